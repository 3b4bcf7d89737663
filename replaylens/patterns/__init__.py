from replaylens.patterns.recognizer import PatternRecognizer, signature
from replaylens.patterns.store import PatternStore

__all__ = ["PatternRecognizer", "PatternStore", "signature"]
