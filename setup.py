from setuptools import setup


setup(
    name="ledger-doctor",
    version="0.1.0",
    description="Receivables ledger import, reconciliation and risk scoring for messy spreadsheet exports",
    packages=["ledger_doctor", "ledger_doctor.store"],
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
    },
    entry_points={
        "console_scripts": [
            "ledger-doctor=ledger_doctor.cli:main",
        ]
    },
)
