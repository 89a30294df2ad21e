"""Build-time pipeline for radical, kanji and vocabulary subject data."""

from subject_core.codec import decode_subject, encode_subject
from subject_core.subject import Subject, SubjectKind

__version__ = "0.1.0"

__all__ = [
    "Subject",
    "SubjectKind",
    "__version__",
    "decode_subject",
    "encode_subject",
]
