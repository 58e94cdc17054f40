"""
Authentication Module
=====================
Optional pre-crawl login step driven through the renderer adapter.

Only fill-and-submit forms are supported: the caller describes the form
with an ``AuthDescriptor`` (credentials + CSS selectors) and
``FormAuthenticator`` drives it once, before traversal starts. Every
step failure degrades to a logged warning; authentication never fails
a job.

Usage::

    from sitemirror.auth import FormAuthenticator

    outcome = await FormAuthenticator(config, renderer, descriptor).authenticate(job.log)
"""

from .form_login import AuthOutcome, FormAuthenticator

__all__ = [
    "AuthOutcome",
    "FormAuthenticator",
]
