"""Asset catalog: 3D asset ingestion and access resolution"""

__version__ = "0.1.0"
