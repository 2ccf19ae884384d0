# eoffice/settings.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from zoneinfo import ZoneInfo
from pathlib import Path


class Settings(BaseSettings):
    # Storage settings
    db_url: str = "sqlite:///data/eoffice.db"

    # Public site used in QR verification links:
    #   {public_base_url}/verify/{letter_id}
    public_base_url: str = "https://eoffice.mij.sch.id"

    # Root organization code. Letters issued by this unit omit the unit segment
    # of the letter number.
    root_unit_code: str = "MIJ"

    # City printed in front of the dated header ("Jakarta, ...")
    letter_city: str = "Jakarta"

    # Approval timestamps (roman month, year, fiscal bucket) are taken in this zone
    timezone: str = "Asia/Jakarta"

    # ---- Letter template assets ----
    # Folder holding the letterhead, footer and QR logo images.
    assets_dir: str = str(Path(__file__).resolve().parent / "assets")
    header_image: str = "Kop_Surat_Resmi.png"
    footer_image: str = "Footer_Surat.png"
    logo_image: str = "logo-mij.png"

    # Optional TrueType fonts to embed. When regular is empty the PDF core
    # Helvetica family is used instead.
    font_regular: str = ""
    font_bold: str = ""
    font_italic: str = ""
    font_bold_italic: str = ""

    # ---- Upload (stamping) mode ----
    # Preview width assumed when a client does not send a usable render width
    default_render_width: float = 600.0

    # ---- Numbering ----
    # Attempts for the counter read-increment-write before giving up
    counter_max_attempts: int = 8
    counter_retry_backoff_s: float = 0.05

    # CORS settings
    allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    required_assets_check: bool = Field(
        default=False,
        description="Fail fast at startup if header/footer images are missing",
    )

    model_config = ConfigDict(
        # Always load .env from the same folder as this settings.py
        env_file=str(Path(__file__).resolve().parent / ".env"),
        env_prefix="EOFFICE_",
        extra="ignore",
    )

    def asset_path(self, name: str) -> Path:
        """Absolute path of a file inside ``assets_dir``."""
        return Path(self.assets_dir) / name

    def verify_url(self, letter_id: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/verify/{letter_id}"

    def local_now(self) -> datetime:
        """Timezone-aware current time in the configured office timezone."""
        return datetime.now(ZoneInfo(self.timezone))

    def font_files(self) -> Optional[dict]:
        """
        Map of fpdf2 style -> TTF path, or None when no font is configured.
        Missing variants reuse the regular (or bold) file.
        """
        if not self.font_regular:
            return None
        bold = self.font_bold or self.font_regular
        return {
            "": self.font_regular,
            "B": bold,
            "I": self.font_italic or self.font_regular,
            "BI": self.font_bold_italic or bold,
        }

    def get_origins_list(self) -> List[str]:
        """Parse comma-separated origins into a list."""
        if not self.allowed_origins:
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


_settings_instance = None

def get_settings() -> Settings:
    """Singleton pattern for settings."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
