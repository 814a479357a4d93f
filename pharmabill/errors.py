"""Erreurs métier levées par les services et le stockage."""


class PharmaBillError(Exception):
    pass


class ValidationError(PharmaBillError):
    """Saisie incomplète ou incohérente (client manquant, aucune ligne, remise trop forte...)."""


class DuplicateNumberError(PharmaBillError):
    def __init__(self, number: str):
        super().__init__(f"Invoice number {number} already exists")
        self.number = number


class InvalidPaymentError(PharmaBillError):
    pass


class InvalidTransitionError(PharmaBillError):
    pass


class NotFoundError(PharmaBillError):
    pass


class StorageError(PharmaBillError):
    """L'écriture durable a échoué ; l'état en mémoire n'est pas annulé."""


class ImportFormatError(PharmaBillError):
    pass


class ExportError(PharmaBillError):
    """Aucun moteur PDF utilisable (wkhtmltopdf ou WeasyPrint)."""
