from setuptools import setup, find_packages

setup(
    name="chain-state-store",
    version="0.1.0",
    packages=find_packages(where="src"),  # 指定在 src 目录下查找包
    package_dir={"": "src"},              # 告诉 setuptools 包的根目录是 src
    python_requires=">=3.10",
    install_requires=[
        "sqlalchemy[asyncio]>=2.0",
        "aiosqlite>=0.19",
        "pydantic-settings>=2.0",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
