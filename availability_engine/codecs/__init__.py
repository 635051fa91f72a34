from availability_engine.codecs.import_export import (
    CSV_HEADER,
    EXPORT_FORMATS,
    ImportExportCodec,
    ImportResult,
)

__all__ = ["CSV_HEADER", "EXPORT_FORMATS", "ImportExportCodec", "ImportResult"]
