"""Three-statement projection engine — pure Python, no I/O after load."""


def generate(*args, **kwargs):
    from finplan_engine.orchestrator import generate as _generate
    return _generate(*args, **kwargs)


def load_registry(*args, **kwargs):
    from finplan_engine.registry import TemplateRegistry
    return TemplateRegistry.load(*args, **kwargs)


__all__ = ["generate", "load_registry"]
