from setuptools import setup, find_packages

setup(
    name='rackctl',
    version='0.1.0',
    packages=find_packages(exclude=['rackctl.tests']),
    include_package_data=True,
    install_requires=[
        'typer',
        'fastapi',
        'uvicorn',
        'kubernetes',
        'python-dotenv',
        'pyyaml',
        'pydantic>=2',
    ],
    extras_require={
        'test': [
            'pytest',
            'httpx',
        ],
    },
    entry_points={
        'console_scripts': [
            'rackctl=rackctl.cli:run'
        ]
    },
    author='Your Name',
    description='Provision and validate a master and its nodes over SSH',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.9',
)
