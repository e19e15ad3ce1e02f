from setuptools import setup

setup(
    name='IFUtools',
    version='1.0.0',
    packages=['ifutools', 'ifutools.spectral', 'ifutools.tools'],
    license='MIT License',
    author='Sean G. Sellers',
    author_email='sellers@nmsu.edu',
    description='Continuum normalization and field-of-view matched image cutouts for IFU analysis.',
    python_requires='>=3.10',
    install_requires=['numpy', 'scipy', 'astropy'],
    extras_require={'test': ['pytest']},
)
