"""ctxdocs: keep a project's context documents registered, fresh and findable."""

__version__ = "0.3.0"
