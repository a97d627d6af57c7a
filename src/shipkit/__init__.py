"""
shipkit - assemble deployable NuGet-style packages from build output.

- shipkit.core: errors, results, logging, retry, settings
- shipkit.pack: manifest model, file selection, packager, orchestrator
- shipkit.cli: ``shipkit`` command line
"""

__version__ = "0.1.0"
