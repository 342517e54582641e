from setuptools import setup, find_packages

setup(
    name="speaker_worker",
    version="0.1.0",
    description="Speech synthesis worker with cached cloud TTS and killable local playback",
    author="Bentham",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    package_data={"speaker_worker": ["templates/*.html"]},
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn>=0.21.0",
        "jinja2>=3.1.2",
        "numpy>=1.24.0",
        "boto3>=1.26.0",
        "httpx>=0.24.0",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "redis>=5.0.1",
        "sounddevice>=0.4.6",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=23.0.0",
            "isort>=5.12.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "speaker-worker=speaker_worker.__main__:main",
        ],
    },
    python_requires=">=3.9",
)
