import re
from pathlib import Path

from setuptools import find_packages, setup

# The version is kept only in _version.py, which the package imports.
version_file = Path(__file__).parent / 'src' / 'natinterp' / '_version.py'
version = re.search(r"^version = '([^']+)'", version_file.read_text(), re.M).group(1)

setup(
    name='natinterp',
    version=version,
    description='Natural neighbor (Sibson) interpolation and blended gridding in 2D and 3D',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    python_requires='>=3.9',
    install_requires=['numpy', 'scipy>=1.12'],
    extras_require={'test': ['pytest']},
)
