from setuptools import setup

setup(
    name="dissect.hivedigger",
    version="1.0.0",
    packages=["dissect.hivedigger"],
    install_requires=[
        "dissect.cstruct>=4,<5",
        "dissect.util>=3.0.dev,<4.0.dev",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
