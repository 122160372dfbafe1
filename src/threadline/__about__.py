DEFAULT_MODEL = "gpt-4o"
DEFAULT_PROVIDER = "openai"

__version__ = "0.3.0"
__author__ = "PsiACE"
__author_email__ = "psiace@apache.org"
__copyright__ = f"Copyright (c) 2026, {__author__}."
__homepage__ = "https://github.com/psiace/threadline"
__docs__ = "Stateful, stream-first client for Responses-style LLM APIs."

__all__ = [
    "DEFAULT_MODEL",
    "DEFAULT_PROVIDER",
    "__author__",
    "__author_email__",
    "__copyright__",
    "__docs__",
    "__homepage__",
    "__version__",
]
