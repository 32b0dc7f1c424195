from setuptools import setup, find_packages
from pathlib import Path

# Read requirements.txt for the install_requires field
with open('requirements.txt') as f:
    requirements = f.read().splitlines()

# Read README.md if it exists
readme_path = Path(__file__).parent / 'README.md'
long_description = readme_path.read_text() if readme_path.exists() else 'Bluetooth LE Wi-Fi and cloud credential provisioning'

setup(
    name='btprov',
    version='0.1.0',
    description='Provisions a headless Linux device with Wi-Fi and cloud credentials over Bluetooth LE.',
    long_description=long_description,
    long_description_content_type='text/markdown',
    package_dir={'': 'src'},  # Tells setuptools packages are under src
    packages=find_packages(where='src',),  # Find packages in src
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'btprov=btprov.provisioning_service:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.9'
)
