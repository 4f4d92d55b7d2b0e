from setuptools import setup, find_packages

setup(
    name="sicomore",
    version="0.1.0",
    description="Selection of Interaction effects in COmpressed Multiple Omics REpresentations",
    author="Nomlindelo Mfuphi",
    author_email="nmfuphi@csir.co.za",
    packages=find_packages(include=["sicomore", "sicomore.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pandas>=2.2",
        "numpy>=1.26",
        "scikit-learn>=1.5",
        "scipy>=1.13",
        "statsmodels>=0.14.4",
        "pyyaml>=6.0",
        "networkx>=3.2",
        "matplotlib>=3.8",
        "seaborn>=0.13"
    ],
    extras_require={
        "test": ["pytest>=7.4"]
    },
    entry_points={
        "console_scripts": [
            "sicomore=sicomore.cli:main"
        ]
    },
    include_package_data=True
)
