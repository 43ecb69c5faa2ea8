'''
Sitemill is a pipeline stage rather than a general purpose library. This
setup.py exists so that we can easily add it to the Python path.
'''
from setuptools import setup, find_packages
from pathlib import Path

here = Path(__file__).parent

# Get version
version = {}
with (here / "sitemill" / "version.py").open() as f:
    exec(f.read(), version)

setup(
    name='sitemill',
    version=version['__version__'],
    description='Sitemap parsing stage for a Trio crawl pipeline',
    python_requires=">=3.7",
    keywords='web crawler sitemap',
    packages=find_packages(exclude=['docs', 'tests']),
    install_requires=[
        'feedparser',
        'lxml',
        'python-dateutil',
        'python-mimeparse',
        'trio',
        'w3lib',
        'yarl',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-trio',
        ],
    },
    entry_points={
        'console_scripts': [
            'sitemill=sitemill.__main__:main',
        ],
    },
)
