import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="ctphantom",
    version="0.1.0",
    description="Conversion of CT DICOM images to EGSnrc egsphant voxel phantoms.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "pydicom",
        "rich",
    ],
    extras_require={
        "dev": [
            "black",
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": ["ctphantom=ctphantom.cli:main"],
    },
    include_package_data=True,
    python_requires=">=3.7",
)
