"""
Ligne de commande PharmaBill : sauvegarde, restauration, remise à zéro,
tableau de bord et export PDF des documents.

Usage:
    pharmabill init
    pharmabill stats
    pharmabill export -o sauvegarde.json
    pharmabill import sauvegarde.json
    pharmabill reset --yes
    pharmabill pdf invoice <id>
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

from pharmabill import __version__
from pharmabill.config import Settings, get_settings
from pharmabill.errors import PharmaBillError
from pharmabill.formatters import format_currency
from pharmabill.models.common import DocumentKind
from pharmabill.storage.repo import EntityRepository

logger = logging.getLogger("pharmabill")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pharmabill", description="Pharmacy invoicing data tools")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--data-dir", type=Path, help="Data directory (default: PHARMABILL_DATA_DIR)")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Seed factory defaults on first use")
    sub.add_parser("stats", help="Show dashboard figures")

    p_export = sub.add_parser("export", help="Write a full JSON backup")
    p_export.add_argument("-o", "--output", help="Target file ('-' for stdout)")

    p_import = sub.add_parser("import", help="Replace all data with a JSON backup")
    p_import.add_argument("file", type=Path)

    p_reset = sub.add_parser("reset", help="Wipe every collection")
    p_reset.add_argument("--yes", action="store_true", help="Confirm the wipe")

    p_pdf = sub.add_parser("pdf", help="Export a proforma or invoice as PDF")
    p_pdf.add_argument("kind", choices=[k.value for k in DocumentKind])
    p_pdf.add_argument("id")
    p_pdf.add_argument("-o", "--out-dir", type=Path)
    return parser


def _cmd_stats(repo: EntityRepository, settings: Settings) -> int:
    from pharmabill.services.accounting_service import AccountingService

    stats = AccountingService(repo).get_stats()
    money = lambda v: format_currency(v, settings.currency_suffix)  # noqa: E731
    print(f"CA journalier   : {money(stats.daily_turnover)}")
    print(f"CA mensuel      : {money(stats.monthly_turnover)}")
    print(f"Total encaissé  : {money(stats.total_collected)}")
    print(f"Reste à payer   : {money(stats.total_remaining)}")
    print(f"Factures        : {stats.invoice_count}")
    return 0


def _cmd_export(repo: EntityRepository, output: Optional[str]) -> int:
    dump = repo.export_all()
    if output == "-":
        sys.stdout.write(dump + "\n")
        return 0
    target = Path(output or f"SAUVEGARDE_PHARMACIE_{date.today():%Y_%m_%d}.json")
    target.write_text(dump, encoding="utf-8")
    print(f"Sauvegarde écrite : {target}")
    return 0


def _cmd_pdf(repo: EntityRepository, settings: Settings, kind: str, doc_id: str, out_dir: Optional[Path]) -> int:
    from pharmabill.services.document_service import DocumentService
    from pharmabill.services.export_service import ExportService

    doc = DocumentService(repo, settings).get_document(DocumentKind(kind), doc_id)
    path = ExportService(repo, settings).export_pdf(doc, out_dir)
    print(f"PDF généré : {path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    if args.data_dir:
        settings = settings.model_copy(update={"data_dir": args.data_dir})
    setup_logging("DEBUG" if args.debug else settings.log_level)

    repo = EntityRepository.from_settings(settings)
    try:
        if args.command == "init":
            seeded = repo.initialize()
            print("Données d'usine installées." if seeded else "Données existantes conservées.")
            return 0
        if args.command == "stats":
            return _cmd_stats(repo, settings)
        if args.command == "export":
            return _cmd_export(repo, args.output)
        if args.command == "import":
            repo.import_all(args.file.read_text(encoding="utf-8"))
            print("Données restaurées.")
            return 0
        if args.command == "reset":
            if not args.yes:
                print("Refus : ajoutez --yes pour confirmer la suppression totale.", file=sys.stderr)
                return 2
            repo.reset_all()
            print("Toutes les données ont été supprimées.")
            return 0
        if args.command == "pdf":
            return _cmd_pdf(repo, settings, args.kind, args.id, args.out_dir)
    except PharmaBillError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Erreur : {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Erreur fichier : {e}", file=sys.stderr)
        return 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
