from setuptools import setup

setup(name='bagpack',
      version='0.1',
      description="bagpack: a Python library for building, validating, and serializing BagIt bags",
      packages=['bagpack', 'bagpack.access', 'bagpack.validate'],
      install_requires=['bagit', 'fs', 'setuptools<81'],
      extras_require={'test': ['pytest']},
      entry_points={'console_scripts': ['bagger = bagpack.cli:main']},
      test_suite="tests.suite",
      test_runner="unittest:TextTestRunner"
)
