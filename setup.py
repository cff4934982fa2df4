from setuptools import setup, find_packages

# Find all packages in the current directory
packages = find_packages(exclude=["tests", "tests.*"])

setup(
    name='omnidb-python',
    version='0.1.0',
    description='Catalog, metadata and result-set access for any ODBC data source',
    long_description=open('README.md', encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    author='omnidb-python contributors',
    packages=packages,
    include_package_data=True,
    # Requires >= Python 3.10
    python_requires='>=3.10',
    classifiers=[
        'Operating System :: Microsoft :: Windows',
        'Operating System :: MacOS',
        'Operating System :: POSIX :: Linux',
    ],
    # The ODBC driver manager is loaded with ctypes at runtime
    install_requires=[],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=False,
)
