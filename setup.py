from setuptools import setup, find_packages

setup(
    name='pyes',
    version='0.1',
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        'numpy>=1.22',
        'pandas>=1.4',
        'scipy>=1.8',
        'statsmodels>=0.13',
        'arch>=7.0',
        'loguru>=0.6',
        'plotly>=5.0',
        'kaleido>=0.2'
    ],
    extras_require={
        'test': [
            'pytest>=7.0'
        ]
    },
    description='pyes: Expected Shortfall estimation and component decomposition',
    author='Alessandro Dodon, Niccolò Lecce, Marco Gasparetti',
    license='MIT',
    python_requires='>=3.8'
)
