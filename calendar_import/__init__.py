"""calendar_import - calendar-interchange ingestion engine.

Parses ICS text (or a provider's event list) into a deduplicated, classified
import preview and commits the user's selection in one batch. Imports are
kept light; use the submodules directly:

    from calendar_import.domain.preview_builder import ImportPreviewBuilder
    from calendar_import.domain.batch_importer import BatchImporter
"""

__version__ = "0.1.0"
