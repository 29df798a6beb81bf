# setup.py
from setuptools import setup, find_packages
from pathlib import Path
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="parapdfa",
    version="1.0.0",
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["parapdfa", "parapdfa.*"]),
    author="Phuoc Nguyen",
    description="Parallel OCR of scanned PDFs and images into searchable, validated PDF/A files.",
    long_description=long_description,
    long_description_content_type='text/markdown',
    python_requires=">=3.9",

    install_requires=[
        "PyMuPDF",
        "tqdm",
        "Pillow",
        "numpy",
        "pytesseract",
        "python-slugify",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'parapdfa=parapdfa.cli:main',
        ],
    },
)
