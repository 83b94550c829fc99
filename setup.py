import os

from setuptools import find_packages, setup

from exactct import __version__

requirementPath="requirements.txt"
install_requires = []
if os.path.isfile(requirementPath):
    with open(requirementPath) as f:
        install_requires = f.read().splitlines()

setup(
    name='exactct',
    version = __version__,
    description="A command line tool for exact conditional tests of log-linear models on contingency tables.",
    packages = find_packages(exclude = ['tests','tests.*']),
    install_requires = install_requires,
    extras_require = {
        'test': ['pytest']
    },
    entry_points={
        'console_scripts': [
            'exactct = exactct.main:cli'
        ],
    },
)
