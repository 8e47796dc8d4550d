'''
To Run:
tingbill new 2024-01
tingbill dir 2024-01
tingbill split --bill bill.yaml --minutes minutes.csv --messages messages.csv --megabytes megabytes.csv
'''
import click
import logging
import re
from pathlib import Path
from typing import Dict, Optional

from ting_bill_split import allocator, config, report_writer, usage_parser
from ting_bill_split.datatypes import Bill, BillSplit
from ting_bill_split.errors import BillSplitError

DEFAULT_BILLING_DIR = 'new-billing-period'

# file role → (name term, extensions) used when scanning a billing directory
DIR_FILES = {
    'bill': ('bill', ('yaml', 'yml', 'toml')),
    'minutes': ('minutes', ('csv',)),
    'messages': ('messages', ('csv',)),
    'megabytes': ('megabytes', ('csv',)),
}

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def is_file_match(file_name: str, name_term: str, ext: str) -> bool:
    """
    True when `file_name` contains `name_term` surrounded only by word characters
    and dashes. With a non-empty `ext` the name must also end in that extension.
    Matching is case-insensitive.
    """
    pattern = r'^[\w-]*' + name_term + r'[\w-]*'
    if ext:
        pattern += r'(\.' + ext + r')'
    return re.match(pattern + r'$', file_name, re.IGNORECASE) is not None


def _safe_file_stem(name: str) -> str:
    """Bill description made safe to use as a file name, e.g. 01/31/2024 → 01_31_2024."""
    stem = re.sub(r'[^\w .-]', '_', name).strip(' .')
    return stem or 'ting-bill'


def find_billing_files(directory: Path) -> Dict[str, Optional[Path]]:
    """First matching file for each role, scanning names in sorted order."""
    found: Dict[str, Optional[Path]] = {role: None for role in DIR_FILES}
    for path in sorted(directory.iterdir()):
        if path.is_dir():
            logger.debug(f'Directory "{path.name}" found, continuing...')
            continue
        for role, (term, exts) in DIR_FILES.items():
            if found[role] is None and any(is_file_match(path.name, term, ext) for ext in exts):
                found[role] = path
    return found


def run_split(bill_path: Path, minutes_path: Path, messages_path: Path,
              megabytes_path: Path, strict_short_straw: bool = False) -> tuple[Bill, BillSplit]:
    bill = config.load_bill(bill_path)
    minutes = usage_parser.parse_minutes(minutes_path)
    messages = usage_parser.parse_messages(messages_path)
    megabytes = usage_parser.parse_megabytes(megabytes_path)
    split = allocator.compute_split(minutes, messages, megabytes, bill,
                                    precision=config.DEFAULT_PRECISION,
                                    strict_short_straw=strict_short_straw)
    return bill, split


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Show debug logging')
def main(verbose):
    """
    Split a Ting bill across devices by usage.

    Use `new` to scaffold a billing directory, then `dir` to run on it.
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@main.command()
@click.argument('dir_name', default=DEFAULT_BILLING_DIR, type=click.Path(path_type=Path))
def new(dir_name):
    """Create a directory for a new billing period with a bill.yaml template."""
    if dir_name.exists():
        raise click.ClickException(f'Directory {dir_name} already exists.')

    click.echo("Creating a directory for a new billing period.")
    dir_name.mkdir(parents=True)
    config.write_bill_template(dir_name)
    click.echo(f"\n1. Enter values for the {config.BILL_FILENAME} file in new directory `{dir_name}`")
    click.echo("2. Add csv files for minutes, messages, megabytes in the new directory")
    click.echo(f"3. run `tingbill dir {dir_name}`")


@main.command('dir')
@click.argument('directory', default='.', type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--strict-short-straw', is_flag=True, help='Fail when shortStrawId matches no device')
def dir_command(directory, strict_short_straw):
    """
    Run on a directory holding a bill.yaml (or bill.toml) and minutes, messages and megabytes CSVs.

    Each file only needs its type somewhere in the name, e.g. 20240131-messages.csv.
    """
    files = find_billing_files(directory)
    missing = [role for role, path in files.items() if path is None]
    if missing:
        raise click.ClickException(
            f'Unable to open necessary files in {directory}: no {", ".join(missing)} file found.'
        )

    click.echo(f"Running calculations based on files in directory: {directory}")
    try:
        bill, split = run_split(files['bill'], files['minutes'], files['messages'],
                                files['megabytes'], strict_short_straw)
    except BillSplitError as e:
        raise click.ClickException(str(e)) from e

    name = _safe_file_stem(bill.description or directory.resolve().name)
    try:
        report_path = report_writer.write_report(split, bill, directory / f'{name}_report.csv')
        click.echo(f'✔ CSV report generation complete: {report_path}')
        pdf_path = report_writer.write_pdf_report(split, bill, directory / f'{name}.pdf')
        click.echo(f'✔ PDF invoice generation complete: {pdf_path}')
    except OSError as e:
        raise click.ClickException(f'Unable to write report in {directory}: {e}') from e
    click.echo("\n" + report_writer.format_split_report(split, bill))


@main.command()
@click.option('--bill', 'bill_path', required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Bill definition YAML or TOML')
@click.option('--minutes', 'minutes_path', required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Minutes usage CSV')
@click.option('--messages', 'messages_path', required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Messages usage CSV')
@click.option('--megabytes', 'megabytes_path', required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Megabytes usage CSV')
@click.option('--report-csv', type=click.Path(dir_okay=False, path_type=Path), help='Also write the CSV report here')
@click.option('--report-pdf', type=click.Path(dir_okay=False, path_type=Path), help='Also write the PDF invoice here')
@click.option('--strict-short-straw', is_flag=True, help='Fail when shortStrawId matches no device')
def split(bill_path, minutes_path, messages_path, megabytes_path, report_csv, report_pdf, strict_short_straw):
    """Split a bill using individually named files."""
    try:
        bill, result = run_split(bill_path, minutes_path, messages_path,
                                 megabytes_path, strict_short_straw)
    except BillSplitError as e:
        raise click.ClickException(str(e)) from e

    try:
        if report_csv:
            report_writer.write_report(result, bill, report_csv)
            click.echo(f'✔ CSV report generation complete: {report_csv}')
        if report_pdf:
            report_writer.write_pdf_report(result, bill, report_pdf)
            click.echo(f'✔ PDF invoice generation complete: {report_pdf}')
    except OSError as e:
        raise click.ClickException(f'Unable to write report: {e}') from e
    click.echo(report_writer.format_split_report(result, bill))


if __name__ == '__main__':
    main()
