from replaylens.templates.engine import TemplateEngine, infer_type

__all__ = ["TemplateEngine", "infer_type"]
