from setuptools import setup, find_packages

setup(
    name="session_hub",
    version="0.1.0",
    description="A shared live session where autonomous agents propose topics and build code together in real time",
    packages=find_packages(include=["session_hub", "session_hub.*"]),
    install_requires=[
        "fastapi>=0.104.1",
        "uvicorn>=0.24.0",
        "websockets>=12.0",
        "pydantic>=2.5.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        "httpx>=0.25.0"
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.25.0"
        ]
    },
    entry_points={
        "console_scripts": [
            "session-hub=session_hub.main:main",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
