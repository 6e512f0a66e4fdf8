from setuptools import find_packages, setup

setup(
    name="ktunnelx",
    author="Blake Watters <blake@opsani.com>",
    description="Provision tunnel sidecars in Kubernetes and wait for them to be ready",
    version="0.1.0",
    license="Apache-2.0",
    python_requires=">=3.10",
    package_data={"ktunnel": ["py.typed"]},
    packages=find_packages(include=["ktunnel", "ktunnel.*"]),
    install_requires=[
        "aiohttp>=3.8",
        "devtools>=0.8",
        "kubernetes_asyncio>=24.2",
        "loguru>=0.6",
        "pydantic>=2.0,<3",
        "pydantic-core>=2.0",
        "pydantic-settings>=2.0",
        "typer>=0.9",
    ],
    extras_require={
        "test": [
            "freezegun>=1.2",
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "pytest-mock>=3.10",
        ],
    },
    entry_points={
        "console_scripts": ["ktunnel=ktunnel.cli:main"],
    },
)
