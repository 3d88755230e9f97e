"""
Setup script for robo-pose package.

This package provides an Extended Kalman Filter core for planar mobile robot
pose estimation with standard and square-root covariance representations.
"""

from setuptools import setup, find_packages
import os

# Read long description from README
here = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

# Read requirements
with open(os.path.join(here, 'requirements.txt'), encoding='utf-8') as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]

# Split core requirements from dev tooling
core_requirements = []
dev_requirements = []

for req in requirements:
    if any(dev_pkg in req for dev_pkg in ['pytest', 'flake8']):
        dev_requirements.append(req)
    else:
        core_requirements.append(req)

setup(
    name='robo-pose',
    version='1.0.0',
    description='Planar Robot Pose Estimation with an Extended Kalman Filter',
    long_description=long_description,
    long_description_content_type='text/markdown',
    author='Robo Localization Team',
    author_email='team@robo-localization.org',

    packages=find_packages(where='src'),
    package_dir={'': 'src'},

    # Core dependencies
    install_requires=core_requirements,

    # Optional dependencies
    extras_require={
        'dev': dev_requirements,
    },

    python_requires='>=3.8',

    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Science/Research',
        'Intended Audience :: Developers',
        'Topic :: Scientific/Engineering :: Mathematics',
        'Topic :: Software Development :: Libraries :: Python Modules',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],

    keywords='robotics localization kalman-filter extended-kalman-filter square-root-filter pose-estimation',
)
