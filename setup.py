from setuptools import setup, find_packages

setup(
    name="gscore",
    version="1.0.0",
    description="GitHub reputation scores bound to wallet addresses, with attested on-chain storage",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "pydantic>=2.0",
        "slowapi>=0.1.9",
        "python-json-logger>=3.1.0",
        "httpx>=0.27.0",
        "web3>=7.0.0",
        "eth-utils>=4.0.0",
    ],
    extras_require={"dev": ["pytest>=7.0", "pytest-asyncio>=0.23", "respx>=0.21.0"]},
    entry_points={"console_scripts": ["gscore=gscore.cli:main"]},
    python_requires=">=3.9",
    license="CC0-1.0",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries",
        "License :: CC0 1.0 Universal (CC0 1.0) Public Domain Dedication",
        "Programming Language :: Python :: 3",
    ],
    keywords="github reputation score wallet attestation web3",
)
