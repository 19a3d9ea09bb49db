#!/usr/bin/env python3

# To view long desc. in html:
#   python setup.py --long-description | rst2html.py > output.html

from setuptools import setup, find_packages

with open('README.rst') as f:
    long_desc = f.read()

setup(
    name='usbgadget',
    version='0.1.0',
    description='USB gadget configfs tree model',
    long_description=long_desc,
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=['path>=16.14', 'numpy'],
    extras_require={
        'test': ['pytest'],
    },
    python_requires='>=3.8',
    entry_points={
        'console_scripts': ['usbgadget=usbgadget.__main__:main'],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Natural Language :: English',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: Implementation :: CPython',
        'Topic :: System :: Hardware :: Hardware Drivers',
        'Topic :: Utilities',
    ],
)
