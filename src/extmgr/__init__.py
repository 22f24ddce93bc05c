"""extmgr -- enable, disable, install, update, and remove agent extension packages.

Packages installed into a coding agent ship one or more *extension
entrypoints*. This package decides which entrypoints are active from the
ordered filter rules stored in each scope's ``settings.json``, discovers the
entrypoints a package ships, and coordinates install, update, and removal
through the host's package-management command.

Typical workflow::

    extmgr list                                   # catalog with states
    extmgr disable npm:demo extensions/main.ts    # flip one entrypoint
    extmgr remove npm:demo --scope both           # uninstall everywhere

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and host directory layout.
    settings: Atomic per-scope settings store.
    resolver: Filter-rule evaluation.
    discovery: Entrypoint discovery inside a package root.
    catalog: Extension catalog builder.
    packages: Install, update, and remove coordination.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
