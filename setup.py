from setuptools import setup, find_packages

setup(
    name="constellation",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "scipy",
        "scikit-learn",
        "pandas",
        "numba",
        "click",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "constellation=constellation.cli:main",
        ],
    },
    description="Louvain community detection and cluster snapshots for page link graphs",
    python_requires=">=3.9",
)
