from setuptools import setup, find_namespace_packages

setup(
    name="pgsheet",
    version="1.0.0",
    description="pgsheet — spreadsheet-style PostgreSQL client for the terminal",
    packages=find_namespace_packages(include=["core*", "ui*", "utils*"]),
    py_modules=["main", "config"],
    package_data={"ui": ["*.tcss"]},
    python_requires=">=3.10",
    install_requires=[
        "textual>=0.47.0",
        "rich>=13.7.0",
        "psycopg2-binary>=2.9.9",
        "python-dotenv>=1.0.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "loguru>=0.7.2",
        "click>=8.1.7",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pgsheet=main:cli",
        ],
    },
)
