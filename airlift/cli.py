"""
CLI interface for airlift.

Provides commands to compose package definitions, inspect and verify
packages, and load or pull them from any supported source.
"""

import logging
import platform
import shutil
from pathlib import Path

import click

from airlift import __version__
from airlift.errors import AirliftError


logger = logging.getLogger(__name__)


def _get_config(ctx):
    """Config loaded by the group, or defaults when none was written yet."""
    from airlift.config import AirliftConfig

    if "config_error" in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj['config_error']}", err=True)
        raise SystemExit(1)
    return ctx.obj.get("config") or AirliftConfig()


def _fail(message: str) -> None:
    click.echo(f"✗ {message}", err=True)
    raise SystemExit(1)


def _report_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        logger.warning(warning)


@click.group()
@click.version_option(version=__version__, prog_name="airlift")
@click.option("--log-level", default=None, help="Override the configured log level (DEBUG, INFO, ...)")
@click.pass_context
def main(ctx, log_level):
    """
    airlift - Package deployment bundles for disconnected environments.

    Compose component imports, then load, pull, inspect and verify packages
    from OCI registries, tarballs, URLs, split archives and clusters.
    """
    from airlift.config import ConfigError, load_config
    from airlift.utils import setup_logging

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config()
    except FileNotFoundError:
        # init creates it; everything else runs on defaults
        ctx.obj["config"] = None
    except ConfigError as e:
        ctx.obj["config_error"] = str(e)

    config = ctx.obj.get("config")
    level = log_level or (config.log_level if config else "INFO")
    setup_logging(level, config.log_format if config else "pretty")


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize airlift configuration."""
    from airlift.config import AirliftConfig, get_airlift_home
    import yaml

    home = get_airlift_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = AirliftConfig(env_file=str(home / ".env")).to_dict()
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# AIRLIFT_ARCHITECTURE=amd64\n# AIRLIFT_CACHE=~/.airlift-cache\n")

    click.echo(f"Initialized airlift config at {cfg_path}")


@main.command("compose")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".")
@click.option("--flavor", default="", help="Only compose components matching this flavor")
@click.option("--arch", default="", help="Target architecture (defaults to config, then this machine)")
@click.option("--differential", "reference", default=None, help="Reference package whose images and repos are skipped")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), help="Write the definition here")
@click.pass_context
def compose(ctx, directory: Path, flavor: str, arch: str, reference, output):
    """
    Resolve component imports in DIRECTORY/airlift.yaml.

    Prints the composed definition, or writes it with --output.

    Examples:

        airlift compose ./my-package

        airlift compose ./my-package --flavor upstream -o composed.yaml

        airlift compose . --differential airlift-package-app-amd64-1.0.0.tar.zst
    """
    from airlift.creator import compose_components, load_differential_data, remove_copies_from_components
    from airlift.layout import DEFINITION_FILE, read_definition_file
    from airlift.utils import dump_yaml

    config = _get_config(ctx)
    try:
        pkg = read_definition_file(directory / DEFINITION_FILE)
        pkg.metadata.architecture = config.get_arch(arch, pkg.metadata.architecture)
        pkg.build.flavor = flavor

        composed, warnings = compose_components(pkg, flavor, config=config, working_dir=directory)
        _report_warnings(warnings)

        if reference:
            diff = load_differential_data(reference, config)
            composed.components = remove_copies_from_components(composed.components, diff)
            composed.build.differential = True
            composed.build.differential_package_version = diff.package_version
    except (AirliftError, FileNotFoundError) as e:
        _fail(f"compose failed: {e}")

    rendered = dump_yaml(composed.to_dict())
    if output:
        output.write_text(rendered)
        click.echo(f"✓ Wrote {len(composed.components)} composed components to {output}")
    else:
        click.echo(rendered, nl=False)


def _source_options(source: str, key: str, shasum: str, components: str = ""):
    from airlift.sources import PackageOptions

    return PackageOptions(
        package_source=source,
        shasum=shasum or "",
        public_key_path=key or "",
        optional_components=components or "",
    )


def _open_source(config, options, cluster: bool):
    from airlift.sources import new_cluster_source, new_source

    if cluster:
        return new_cluster_source(options, config)
    return new_source(options, config)


@main.command("inspect")
@click.argument("source")
@click.option("--key", "-k", default="", help="Public key to verify the package signature")
@click.option("--shasum", default="", help="Expected SHA-256 of the package")
@click.option("--sbom", is_flag=True, help="Also extract SBOMs and print their location")
@click.option("--cluster", is_flag=True, help="SOURCE is the name of a deployed package")
@click.option("--insecure", is_flag=True, help="Skip signature checks and allow unpinned downloads")
@click.pass_context
def inspect(ctx, source: str, key: str, shasum: str, sbom: bool, cluster: bool, insecure: bool):
    """
    Print the definition of a package without loading its contents.

    Examples:

        airlift inspect airlift-package-app-amd64-1.0.0.tar.zst

        airlift inspect oci://ghcr.io/acme/app:1.0.0 --key cosign.pub

        airlift inspect app --cluster
    """
    from airlift.layout import PackageLayout
    from airlift.utils import dump_yaml

    config = _get_config(ctx)
    config.insecure = config.insecure or insecure
    tmp = config.make_temp_dir()
    try:
        src = _open_source(config, _source_options(source, key, shasum), cluster)
        layout = PackageLayout(tmp)
        pkg, warnings = src.load_package_metadata(layout, sbom, skip_validation=True)
        _report_warnings(warnings)
        click.echo(dump_yaml(pkg.to_dict()), nl=False)
        if sbom and layout.sboms.path is not None:
            target = Path.cwd() / "sboms"
            shutil.copytree(layout.sboms.path, target, dirs_exist_ok=True)
            click.echo(f"✓ SBOMs written to {target}", err=True)
    except (AirliftError, FileNotFoundError, NotImplementedError) as e:
        _fail(f"inspect failed: {e}")
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@main.command("load")
@click.argument("source")
@click.argument("destination", type=click.Path(file_okay=False, path_type=Path))
@click.option("--components", default="", help="Comma-separated components to load (globs, '-' excludes)")
@click.option("--key", "-k", default="", help="Public key to verify the package signature")
@click.option("--shasum", default="", help="Expected SHA-256 of the package")
@click.option("--unarchive", is_flag=True, help="Expand component tarballs after loading")
@click.option("--insecure", is_flag=True, help="Skip signature checks and allow unpinned downloads")
@click.pass_context
def load(ctx, source: str, destination: Path, components: str, key: str, shasum: str, unarchive: bool, insecure: bool):
    """
    Load SOURCE into the DESTINATION directory, validating it on the way.

    Examples:

        airlift load airlift-package-app-amd64-1.0.0.tar.zst ./out

        airlift load oci://ghcr.io/acme/app:1.0.0 ./out --components 'web,-debug*'
    """
    from airlift.filters import ByLocalOS, BySelectState, Combine
    from airlift.layout import PackageLayout

    config = _get_config(ctx)
    config.insecure = config.insecure or insecure
    try:
        src = _open_source(config, _source_options(source, key, shasum, components), cluster=False)
        component_filter = Combine(BySelectState(components), ByLocalOS(platform.system().lower()))
        pkg, warnings = src.load_package(PackageLayout(destination), component_filter, unarchive)
        _report_warnings(warnings)
    except (AirliftError, FileNotFoundError) as e:
        _fail(f"load failed: {e}")

    click.echo(f"✓ Loaded {pkg.metadata.name} ({len(pkg.components)} components) into {destination}")


@main.command("pull")
@click.argument("source")
@click.option("-o", "--output-directory", type=click.Path(file_okay=False, path_type=Path), default=".")
@click.option("--shasum", default="", help="Expected SHA-256 of the package")
@click.option("--insecure", is_flag=True, help="Allow unpinned downloads")
@click.pass_context
def pull(ctx, source: str, output_directory: Path, shasum: str, insecure: bool):
    """
    Fetch SOURCE as a single local tarball.

    Examples:

        airlift pull oci://ghcr.io/acme/app:1.0.0 -o ./packages
    """
    config = _get_config(ctx)
    config.insecure = config.insecure or insecure
    output_directory.mkdir(parents=True, exist_ok=True)
    try:
        src = _open_source(config, _source_options(source, "", shasum), cluster=False)
        tarball = src.collect(output_directory)
    except (AirliftError, FileNotFoundError) as e:
        _fail(f"pull failed: {e}")

    click.echo(f"✓ Pulled {source} to {tarball}")


@main.command("verify")
@click.argument("source")
@click.option("--key", "-k", default="", help="Public key to verify the package signature")
@click.option("--shasum", default="", help="Expected SHA-256 of the package")
@click.pass_context
def verify(ctx, source: str, key: str, shasum: str):
    """
    Fully load SOURCE into a scratch directory and check every checksum and the signature.

    Examples:

        airlift verify airlift-package-app-amd64-1.0.0.tar.zst --key airlift.pub
    """
    from airlift.filters import Empty
    from airlift.layout import PackageLayout

    config = _get_config(ctx)
    tmp = config.make_temp_dir()
    try:
        src = _open_source(config, _source_options(source, key, shasum), cluster=False)
        pkg, warnings = src.load_package(PackageLayout(tmp), Empty(), False)
        _report_warnings(warnings)
    except (AirliftError, FileNotFoundError) as e:
        _fail(f"verify failed: {e}")
    finally:
        shutil.rmtree(tmp, ignore_errors=True)

    checked = "checksums and signature" if key else "checksums"
    click.echo(f"✓ {pkg.metadata.name} {pkg.metadata.version} verified ({checked})")


@main.command("keygen")
@click.option("--private", "private_path", type=click.Path(dir_okay=False, path_type=Path), default=Path("airlift.key"))
@click.option("--public", "public_path", type=click.Path(dir_okay=False, path_type=Path), default=Path("airlift.pub"))
@click.option("--password", envvar="AIRLIFT_KEY_PASSWORD", default=None, help="Encrypt the private key")
def keygen(private_path: Path, public_path: Path, password):
    """Generate an Ed25519 key pair for signing packages."""
    from airlift.signing import generate_key_pair

    for path in (private_path, public_path):
        if path.exists():
            _fail(f"{path} already exists")
    generate_key_pair(private_path, public_path, password)
    click.echo(f"✓ Wrote {private_path} and {public_path}")


if __name__ == "__main__":
    main()
