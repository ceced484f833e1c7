from setuptools import setup, find_packages

setup(
    name             = 'coprede-painel',
    version          = '1.0.0',
    description      = 'COP Rede panel: network incident summaries, alerts and HUB shift allocations',
    author           = 'COP Rede',
    packages         = find_packages(exclude=['tests*']),
    install_requires = open('requirements.txt').read().splitlines(),
    extras_require   = {
        'test': ['pytest', 'httpx'],
    },
    entry_points     = {
        'console_scripts': [
            'coprede = coprede.cli:main',
        ],
    },
    python_requires  = '>=3.10',
    classifiers      = [
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
)
