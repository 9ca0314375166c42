import argparse
import asyncio
import logging
import sys

from dotenv import find_dotenv, load_dotenv

from .config import load_config, validate_config
from .errors import TranslationPipelineError
from .models import list_models
from .orchestrator import format_summary, translate_files

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def _cmd_translate(args: argparse.Namespace) -> int:
    try:
        cfg = load_config(args.config, overwrite=True if args.overwrite else None)
        validate_config(cfg)
    except TranslationPipelineError as e:
        print(f"❌ Configuration invalide → {e}")
        return 1

    targets = ", ".join(t.code for t in cfg.targets)
    print(f"▶️ Traduction de {cfg.source.path} ({cfg.source.code}) → {targets}")
    try:
        report = asyncio.run(translate_files(cfg))
    except KeyboardInterrupt:
        print("Interrompu par l'utilisateur.")
        return 130
    except TranslationPipelineError as e:
        print(f"❌ Échec de la traduction → {e}")
        return 1

    print()
    print(format_summary(report))
    if not report.ok:
        print("❌ Traduction incomplète (la progression déjà traduite a été sauvegardée).")
        return 1
    print("✅ Traduction terminée.")
    return 0


def _cmd_models(args: argparse.Namespace) -> int:
    try:
        catalog = list_models(args.provider)
    except ValueError as e:
        print(f"Erreur: {e}")
        return 1
    for provider, infos in catalog.items():
        print(f"\n{provider.upper()}:")
        for info in infos:
            flag = " (déprécié)" if info.is_deprecated else ""
            print(f"  {info.id}{flag} - {info.max_tokens} tokens")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="i18n-ai",
        description="Traduction de fichiers i18n JSON par IA : découpage en chunks, retry, sauvegarde incrémentale.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Logs détaillés (DEBUG)")
    sub = parser.add_subparsers(dest="command")

    p_translate = sub.add_parser("translate", help="Traduit les fichiers i18n JSON")
    p_translate.add_argument("-c", "--config", required=False, help="Fichier de configuration (défaut: translator.config.json)")
    p_translate.add_argument("-o", "--overwrite", action="store_true", help="Écrase les traductions existantes")
    p_translate.set_defaults(func=_cmd_translate)

    p_models = sub.add_parser("models", help="Liste les modèles connus")
    p_models.add_argument("-p", "--provider", required=False, help="openai | anthropic | gemini | deepseek | xai")
    p_models.set_defaults(func=_cmd_models)
    return parser


def main(argv=None) -> None:
    # Charger .env avant toute lecture d'os.getenv (config/services)
    load_dotenv(find_dotenv(usecwd=True), override=False)

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    if not getattr(args, "func", None):
        parser.print_help()
        sys.exit(1)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
