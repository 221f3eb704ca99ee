"""Release domain: commit analysis, versioning, notes and the publish pipeline.

Import from the submodules directly (``releaser.release.pipeline``, ...);
this package deliberately re-exports nothing so that ``releaser.git`` can
depend on ``releaser.release.model`` without an import cycle.
"""
