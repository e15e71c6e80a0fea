from setuptools import find_packages, setup

setup(
    name="infra-automation",
    version="0.1.0",
    packages=find_packages(
        include=[
            "infra_common",
            "infra_common.*",
            "infra_persistence",
            "infra_persistence.*",
            "infra_codegen",
            "infra_codegen.*",
            "infra_worker",
            "infra_worker.*",
            "infra_server",
            "infra_server.*",
            "infra_client",
            "infra_client.*",
            "infra_admin",
            "infra_admin.*",
        ]
    ),
    install_requires=[
        "requests>=2.31.0",
        "fastapi>=0.104.0",
        "uvicorn>=0.24.0",
        "pydantic>=2.0",
        "aiosqlite>=0.19.0",
        "click>=8.1.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-xdist>=3.3.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "automation=infra_client.cli:main",
            "automation-server=infra_server.app:main",
            "automation-worker=infra_worker.__main__:main",
            "automation-admin=infra_admin.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
