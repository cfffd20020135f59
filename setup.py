from setuptools import setup, find_packages

setup(
    name="issuescope",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "scripts"]),
    python_requires=">=3.9",
    install_requires=[
        "aiohttp",
        "fastapi",
        "pydantic>=2",
        "pydantic-settings",
        "python-dotenv",
        "redis>=4.2",
        "tqdm",
        "uvicorn",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
