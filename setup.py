# setup.py
from setuptools import setup, find_packages

setup(
    name="incident-pred",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "__pycache__"]),
    install_requires=[
        "pandas>=2.2.0",
        "numpy>=1.26.1",
        "scikit-learn>=1.4.0",
        "scipy>=1.10",
        "statsmodels>=0.14",
        "PyYAML~=6.0.2",
        "joblib~=1.5.1",
        "rich>=13.0",
    ],
    extras_require={
        "test": [
            "pytest~=8.3.5",
        ],
    },
)
