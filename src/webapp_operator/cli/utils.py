from pathlib import Path

import typer
import yaml

from webapp_operator.models.webapp import WebAppSpec


def load_manifests(manifest_path):
    """
    Read every YAML document from a manifest file, skipping empty ones.
    """
    path = Path(manifest_path)
    if not path.is_file():
        typer.echo(f"Manifest not found: {path}", err=True)
        raise typer.Exit(1)

    try:
        with open(path, "r") as f:
            return [doc for doc in yaml.safe_load_all(f) if doc]
    except yaml.YAMLError as e:
        typer.echo(f"Invalid YAML in {path}: {e}", err=True)
        raise typer.Exit(1)


def load_webapps(manifest_path):
    """
    Return only the WebApp documents of a manifest file.
    """
    return [
        doc
        for doc in load_manifests(manifest_path)
        if isinstance(doc, dict) and doc.get("kind") == WebAppSpec._crd_kind
    ]
