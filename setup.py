from setuptools import find_namespace_packages, setup

setup(
    name="event_track_qa",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src"),
    install_requires=[
        # Core scientific packages
        "numpy>=1.24.3",
        "pandas>=2.2.3",  # Derived tables as data frames

        # Data handling and processing
        "h5py>=3.12.1",   # HDF5 input and derived-table storage

        # Visualization
        "matplotlib>=3.9.4",

        # Progress bars and utilities
        "tqdm>=4.67.1",

        # Data formats and storage
        "pyyaml>=6.0.2",  # For YAML file handling
    ],
    extras_require={
        'dev': [
            'pytest',          # For testing
        ],
    },
    python_requires=">=3.9",

    # Metadata
    description="Event selection, track QA and derived-table skimming for collision data",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Physics",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
    ],
)
