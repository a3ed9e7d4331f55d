"""Set-up file for resflow for installations using ``pip install .``"""
from setuptools import find_packages, setup


with open("requirements.txt") as f:
    required = f.read().splitlines()

with open("requirements-dev.txt") as f:
    required_dev = f.read().splitlines()


setup(
    name="resflow",
    version="0.3.0",
    license="GPL",
    keywords=["reservoir simulation finite volume newton impes"],
    install_requires=required,
    extras_require={"test": required_dev},
    description="Newton solver and implicit pressure assembly for reservoir flow",
    platforms=["Linux", "Windows", "Mac OS-X"],
    package_data={"resflow": ["py.typed"]},
    packages=find_packages("src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    zip_safe=False,
)
