from setuptools import find_packages, setup


setup(
    name="tensorgraph",
    version="0.1.0",
    description="Tensor dataflow graph IR: transpose rewrites, shape inference and arena memory planning",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
    ],
    extras_require={
        "dev": [
            "pytest>=7",
        ],
    },
    zip_safe=False,
)
