"""Setup configuration for Site KRI package."""

from setuptools import setup, find_packages

setup(
    name="site-kri",
    version="1.0.0",
    description="Site-level KRI flagging and QTL banding for clinical trial monitoring",
    author="",
    author_email="",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"site_kri.config": ["*.yaml"]},
    python_requires=">=3.10",
    install_requires=[
        "duckdb>=1.0.0",
        "pandas>=2.1.0",
        "numpy>=1.26.0",
        "scipy>=1.11.0",
        "openpyxl>=3.1.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=8.0.0",
            "pytest-cov>=4.1.0",
            "black>=24.1.0",
            "ruff>=0.2.0",
        ],
    },
)
