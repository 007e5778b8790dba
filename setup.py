from __future__ import annotations

from setuptools import find_packages, setup  # type: ignore


setup(
    name="epicloop",
    version="0.1.0",
    description="Continuous, scrubbable playback of DSCOVR/EPIC Earth frames with bounded caching",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "numpy>=1.24",
        "httpx>=0.25",
        "Pillow>=10.0",
        "fastapi>=0.110",
        "uvicorn>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
        "cv": [
            "opencv-python>=4.8",
        ],
    },
    entry_points={
        "console_scripts": [
            "epicloop=epicloop.__main__:main",
        ],
    },
)
