"""
Bank Feeds - Setup Configuration
"""
from setuptools import setup, find_packages
from pathlib import Path

# Read README
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(
    name="bookkeeping-bankfeeds",
    version="1.0.0",
    author="Andrew",
    description="Bank feed reconciliation: categorize, review and promote bank transactions to expenses",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=[
        "psycopg2-binary>=2.9.9",
        "python-dotenv>=1.0.0",
        "rapidfuzz>=3.5.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-cov>=4.1.0",
            "black>=23.12.1",
            "flake8>=7.0.0",
            "mypy>=1.8.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "bankfeeds-init=bankfeeds.cli.init_db:main",
            "bankfeeds-import=bankfeeds.cli.import_feed:main",
            "bankfeeds-categorize=bankfeeds.cli.categorize:main",
            "bankfeeds-review=bankfeeds.cli.review:main",
            "bankfeeds-sync=bankfeeds.cli.sync:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Financial and Insurance Industry",
        "Topic :: Office/Business :: Financial :: Accounting",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    include_package_data=True,
    package_data={
        "bankfeeds": [
            "db/*.sql",
        ],
    },
)
