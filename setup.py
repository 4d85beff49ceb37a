
from setuptools import setup
import re
import io

__version__ = re.search(
    r'__version__\s*=\s*[\'"]([^\'"]*)[\'"]',
    io.open('px_packager/__init__.py', encoding='utf_8_sig').read()
    ).group(1)

setup(
    name='px_packager',
    description='ProteomeXchange submission packaging for analysis job data packages',
    version=__version__,
    zip_safe=False, # make it easier to find JSON data
    packages=[
        'px_packager',
        'px_packager.configs',
    ],
    package_data={
        'px_packager.configs': ['*.json'],
    },
    scripts=[],
    requires=['deriva'],
    install_requires=[
        'bdbag>=1.6.3',
        'deriva>=1.5.0',
        'frictionless>=4.0.3',
    ],
    extras_require={
        'test': ['pytest'],
    },
    classifiers=[
        'Intended Audience :: Developers',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
    ])
