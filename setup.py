import os

from setuptools import setup, find_packages

here = os.path.abspath(os.path.dirname(__file__))

# Pull version from source without importing
# since we can't import something we haven't built yet :)
__version__ = None
with open(os.path.join(here, 'cloudpubsub', 'version.py')) as f:
    exec(f.read())

with open(os.path.join(here, 'README.rst')) as f:
    README = f.read()

test_require = ['pytest', 'pytest-mock']

setup(
    name="cloudpubsub-python",
    version=__version__,
    python_requires=">=3.8",
    install_requires=[
        "google-cloud-pubsub>=2.0",
        "google-api-core",
        "grpc-google-iam-v1",
        "proto-plus",
        "protobuf",
    ],
    tests_require=test_require,
    extras_require={
        "test": test_require,
    },
    packages=find_packages(exclude=['test']),
    license="Apache License 2.0",
    description="Python client for Google Cloud Pub/Sub subscriptions",
    long_description=README,
    keywords=[
        "google cloud",
        "pubsub",
    ],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: Implementation :: CPython",
        "Programming Language :: Python :: Implementation :: PyPy",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ]
)
