"""CLI for field encryption maintenance."""
import click
import json
import secrets
from typing import Any, Callable, Dict, List, Tuple

from fieldcrypt.domain.encryption.field_encryption import FieldEncryption
from fieldcrypt.domain.encryption.fields import SensitiveFieldSet, fields_for
from fieldcrypt.errors import FieldCryptError
from fieldcrypt.logging_hardening import setup_logging
from fieldcrypt.settings import load_settings

FIELD_SET_CHOICES = [s.value for s in SensitiveFieldSet]


@click.group()
def cli():
    """Field-level encryption CLI."""
    pass


@cli.command("generate-key")
@click.option("--bytes", "num_bytes", default=48, type=int, help="Random bytes of key material (default: 48)")
def generate_key(num_bytes: int):
    """Print a new random master key for ENCRYPTION_MASTER_KEY."""
    if num_bytes < 32:
        raise click.BadParameter("must be at least 32", param_hint="--bytes")
    click.echo(secrets.token_urlsafe(num_bytes))


@cli.command("keys")
def list_keys():
    """List loaded master key ids."""
    encryption = _load_encryption()
    current = encryption.current_key_id
    for key_id in encryption.key_ring.loaded_key_ids:
        marker = "* " if key_id == current else "  "
        click.echo(f"{marker}{key_id}")


def _record_options(func: Callable) -> Callable:
    func = click.argument("file", type=click.File("r"))(func)
    func = click.option("--field", "fields", multiple=True, help="Field name (repeatable)")(func)
    func = click.option("--field-set", "field_sets", multiple=True,
                        type=click.Choice(FIELD_SET_CHOICES), help="Named sensitive field set (repeatable)")(func)
    return func


@cli.command("encrypt")
@_record_options
@click.option("--key-id", default=None, help="Key id to encrypt with (default: current)")
def encrypt_cmd(file, fields: Tuple[str, ...], field_sets: Tuple[str, ...], key_id: str):
    """Encrypt fields of a JSON record (or list of records). FILE may be '-'."""
    encryption = _load_encryption()
    names = _resolve_fields(fields, field_sets)
    _run(file, lambda r: encryption.encrypt_fields(r, names, key_id))


@cli.command("decrypt")
@_record_options
def decrypt_cmd(file, fields: Tuple[str, ...], field_sets: Tuple[str, ...]):
    """Decrypt fields of a JSON record (or list of records). FILE may be '-'."""
    encryption = _load_encryption()
    names = _resolve_fields(fields, field_sets)
    failures = 0

    def apply(record: Dict[str, Any]) -> Dict[str, Any]:
        nonlocal failures
        report = encryption.decrypt_fields_report(record, names)
        for name, code in sorted(report.failed.items()):
            click.echo(f"Error: field '{name}' could not be decrypted ({code})", err=True)
        failures += len(report.failed)
        return report.record

    _run(file, apply)
    if failures:
        raise SystemExit(1)


@cli.command("rotate")
@_record_options
@click.option("--key-id", default=None, help="Target key id (default: current)")
def rotate_cmd(file, fields: Tuple[str, ...], field_sets: Tuple[str, ...], key_id: str):
    """Re-encrypt envelope fields under the target key."""
    encryption = _load_encryption()
    names = _resolve_fields(fields, field_sets)
    _run(file, lambda r: encryption.rotate_fields(r, names, key_id))


def _load_encryption() -> FieldEncryption:
    try:
        return FieldEncryption()
    except FieldCryptError as e:
        raise click.ClickException(str(e))


def _resolve_fields(fields: Tuple[str, ...], field_sets: Tuple[str, ...]) -> List[str]:
    names: List[str] = []
    for field_set in field_sets:
        names.extend(fields_for(field_set))
    names.extend(fields)
    if not names:
        raise click.UsageError("Specify at least one --field or --field-set.")
    # Preserve order, drop duplicates
    return list(dict.fromkeys(names))


def _run(file, apply: Callable[[Dict[str, Any]], Dict[str, Any]]) -> None:
    try:
        payload = json.load(file)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON input: {e}")

    try:
        if isinstance(payload, list):
            if not all(isinstance(item, dict) for item in payload):
                raise click.ClickException("Input list must contain JSON objects only.")
            output: Any = [apply(item) for item in payload]
        elif isinstance(payload, dict):
            output = apply(payload)
        else:
            raise click.ClickException("Input must be a JSON object or a list of objects.")
    except FieldCryptError as e:
        raise click.ClickException(f"{e.code}: {e}")

    click.echo(json.dumps(output, indent=2, ensure_ascii=False))


def main():
    """Console entry point: configure logging, then run the CLI."""
    setup_logging(load_settings().LOG_LEVEL)
    cli()


if __name__ == "__main__":
    main()
