import typer
from typing_extensions import Annotated

from dotenv import load_dotenv, find_dotenv

from webapp_operator.cli.utils import load_webapps

load_dotenv(find_dotenv(usecwd=True))

app = typer.Typer(
    help="WebApp operator: admission, reconciliation and CRD tooling",
    add_completion=False,
)


@app.command("operator")
def run_operator():
    """Run the Kubernetes operator (connects to cluster)."""
    from webapp_operator.main import main

    main()


@app.command("generate-crds")
def generate_crds(
    output: Annotated[
        str, typer.Option("-o", "--output", help="Output directory")
    ] = "crds/generated",
    force: Annotated[bool, typer.Option("--force", help="Force regeneration")] = False,
    validate: Annotated[
        bool, typer.Option("--validate", help="Validate generated CRDs")
    ] = False,
):
    """Generate CRD YAML files from pydantic models."""
    from pathlib import Path
    from webapp_operator.crd.generator import CRDManager

    try:
        output_dir = Path(output)
        manager = CRDManager(output_dir=output_dir)

        if manager.generate_all_crds(force=force):
            typer.echo(f"CRDs generated successfully in {output_dir}")

            if validate:
                if manager.validate_generated_crds():
                    typer.echo("CRD validation passed")
                else:
                    typer.echo("CRD validation failed")
                    raise typer.Exit(1)
        else:
            typer.echo("No CRDs generated (models unchanged)")

    except typer.Exit:
        raise
    except Exception as e:
        typer.echo(f"Failed to generate CRDs: {e}")
        raise typer.Exit(1)


@app.command("validate-models")
def validate_models():
    """Validate CRD models without generating files."""
    from webapp_operator.crd.generator import CRDManager

    try:
        manager = CRDManager()
        crds = manager.get_crds_as_dict()
        models = manager.registry.get_all_models()

        typer.echo(f"Validated {len(models)} CRD models")
        for key in models.keys():
            typer.echo(f"  - {key}")
        typer.echo(f"Generated {len(crds)} CRDs in memory")

    except Exception as e:
        typer.echo(f"Model validation failed: {e}")
        raise typer.Exit(1)


@app.command("check")
def check(
    manifest: Annotated[str, typer.Argument(help="YAML file with WebApp manifests")],
):
    """Run the WebApp admission rules against a manifest file."""
    from webapp_operator.admission.webapp import validate_webapp

    webapps = load_webapps(manifest)
    if not webapps:
        typer.echo(f"No WebApp manifests found in {manifest}")
        raise typer.Exit(1)

    denied = 0
    for webapp in webapps:
        name = (webapp.get("metadata") or {}).get("name", "<unnamed>")
        result = validate_webapp(webapp)
        if result.allowed:
            typer.echo(f"{name}: allowed")
            continue

        denied += 1
        typer.echo(f"{name}: denied ({result.code}) {result.message}")
        for violation in result.violations:
            typer.echo(f"  - {violation}")

    if denied:
        raise typer.Exit(1)


@app.command("render")
def render(
    manifest: Annotated[str, typer.Argument(help="YAML file with WebApp manifests")],
    image: Annotated[
        str, typer.Option("--image", envvar="WEBAPP_IMAGE", help="Container image")
    ] = "nginx:1.27-alpine",
    port: Annotated[
        int, typer.Option("--port", envvar="WEBAPP_PORT", help="Container port")
    ] = 80,
):
    """Print the Deployment and Service generated for each WebApp."""
    import yaml
    from webapp_operator.services.resource_generator import ResourceGenerator

    generator = ResourceGenerator(image=image, port=port)

    resources = []
    for webapp in load_webapps(manifest):
        try:
            resources.extend(generator.build(webapp))
        except Exception as e:
            name = (webapp.get("metadata") or {}).get("name", "<unnamed>")
            typer.echo(f"Could not render {name}: {e}", err=True)
            raise typer.Exit(1)

    typer.echo(yaml.safe_dump_all(resources, sort_keys=False), nl=False)


@app.command("sync-app")
def sync_app(
    repo_url: Annotated[str, typer.Option("--repo-url", help="Git repository URL")],
    path: Annotated[str, typer.Option("--path", help="Path of the WebApp manifests")],
    revision: Annotated[
        str, typer.Option("--revision", help="Git revision to track")
    ] = "HEAD",
    name: Annotated[str, typer.Option("--name", help="Application name")] = "webapps",
):
    """Print the Argo CD Application that syncs WebApps alongside the operator."""
    import yaml
    from webapp_operator.crd.generator import generate_sync_application

    application = generate_sync_application(
        repo_url=repo_url, path=path, name=name, revision=revision
    )
    typer.echo(yaml.safe_dump(application, sort_keys=False), nl=False)
