from setuptools import setup, find_namespace_packages

setup(
    name='image_publisher',
    version='0.1',
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src'),
    python_requires='>=3.9',
    install_requires=[
        'Click>=8.0',
        'pydantic>=2.0',
        'docker',
        'requests',
        'semantic_version>=2.8',
        'boto3',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-mock',
        ],
    },
    entry_points='''
        [console_scripts]
        image-publisher=image_publisher.cli:main
    ''',
)
