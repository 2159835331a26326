import os
from setuptools import setup, find_packages


def run_setup():
    project_dir = os.path.abspath(os.path.dirname(__file__))
    with open(os.path.join(project_dir, 'README.md'), encoding='utf-8') as read_me:
        long_desc = read_me.read()

    version_fn = '.dev_version' if os.path.isfile('.dev_version') else 'clickhouse_node/VERSION'
    with open(os.path.join(project_dir, version_fn), encoding='utf-8') as version_file:
        version = version_file.readline().strip()

    setup(
        name='clickhouse-node',
        keywords=['clickhouse', 'workflow', 'automation', 'http', 'node'],
        description='ClickHouse HTTP integration node for workflow automation hosts',
        version=version,
        long_description=long_desc,
        long_description_content_type='text/markdown',
        package_data={'clickhouse_node': ['VERSION']},
        packages=find_packages(exclude=['tests*']),
        python_requires='>=3.8',
        license='Apache License 2.0',
        install_requires=[
            'aiohttp>=3.8',
            'certifi',
        ],
        extras_require={
            'orjson': ['orjson'],
            'test': ['pytest>=7', 'pytest-asyncio'],
        },
        classifiers=[
            'Development Status :: 4 - Beta',
            'Intended Audience :: Developers',
            'License :: OSI Approved :: Apache Software License',
            'Programming Language :: Python :: 3.8',
            'Programming Language :: Python :: 3.9',
            'Programming Language :: Python :: 3.10',
            'Programming Language :: Python :: 3.11',
            'Programming Language :: Python :: 3.12'
        ],
    )


run_setup()
