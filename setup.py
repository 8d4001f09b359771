from setuptools import find_packages, setup


if __name__ == '__main__':
    setup(
        name='PiecewiseJerkSpeed',
        version=1.0,
        description='Piecewise-jerk longitudinal speed optimization along a fixed path: QP warm start, curve smoothing and IPOPT refinement.',
        license='Apache License 2.0',
        python_requires='>=3.9',
        packages=find_packages(exclude=['tests', 'tests.*', 'configs', 'data', 'output']),
        install_requires=[
            'casadi',
            'numpy',
            'hydra-core',
            'omegaconf',
            'matplotlib',
        ],
        extras_require={
            'test': ['pytest'],
        },
    )
