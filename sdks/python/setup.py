from setuptools import setup, find_packages

setup(
    name="agentregistry-sdk",
    version="0.5.0",
    description="Python SDK for the agent registry API",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=["httpx>=0.25"],
    extras_require={"test": ["pytest>=8.0", "pytest-asyncio>=0.23"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
    ],
)
