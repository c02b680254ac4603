from setuptools import setup, find_packages

setup(
    name="cyber_vault",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["app", "cli", "automation"],
    install_requires=[
        "requests",
        "tenacity",
        "flask",
        "flask-cors",
        "streamlit",
        "pandas",
        "plotly",
        "sqlalchemy",
        "psycopg2-binary",
        "python-dotenv",
        "rich",
        "schedule",
        "python-whois",
        "dnspython",
        "tldextract",
        "beautifulsoup4",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "cyber-vault=cli:main",
        ],
    },
    python_requires=">=3.9",
)
