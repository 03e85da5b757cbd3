#!/usr/bin/env python3

from os import path

from setuptools import setup

from git_strata import __version__

with open(path.join(path.dirname(path.abspath(__file__)), 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='git-strata',
    version=__version__,
    description='Stacked branches workflow for git: track, restack and sync chains of dependent branches',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='MIT',
    keywords='git',
    packages=['git_strata', 'git_strata.client'],
    entry_points={
        'console_scripts': [
            'git-strata = git_strata.cli:main'
        ]
    },
    python_requires='>=3.8, <4',
    extras_require={
        'test': ['pytest', 'pytest-mock'],
    },
    classifiers=[
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent'
    ],
    include_package_data=True
)
