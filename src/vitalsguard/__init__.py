"""vitalsguard - Core Web Vitals budgets for scripted browser scenarios."""

__version__ = "0.1.0"
