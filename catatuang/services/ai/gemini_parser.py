"""
Gemini Transaction Parser

CRITICAL BOUNDARIES:
- The model only PROPOSES a candidate. Receipt candidates are buffered
  in the correction workflow until the user confirms them.
- Every reply is validated against `ParsedCandidate`. Anything that does
  not validate is treated as a failed parse, never patched up.
- The model never sees balances or other ledger data.

Text messages use a small fast model; receipt photos and corrections
use the vision model. Prompts are in Indonesian because users are.
"""

import json
from typing import Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError

from catatuang.config import GeminiSettings, get_settings
from catatuang.models.ledger import DEFAULT_CATEGORIES, CategoryType, ParsedCandidate
from catatuang.services.ai.interface import TransactionParser

logger = structlog.get_logger(__name__)


def _category_lines(category_type: CategoryType) -> str:
    lines = []
    for kind, name, localized_name, _ in DEFAULT_CATEGORIES:
        if kind != category_type:
            continue
        if localized_name and localized_name != name:
            lines.append(f"- {name} ({localized_name})")
        else:
            lines.append(f"- {name}")
    return "\n".join(lines)


SYSTEM_PROMPT = f"""Kamu adalah asisten keuangan yang mengurai input transaksi keuangan dalam bahasa Indonesia ke format JSON.

TUGAS:
Analisis input pengguna dan ekstrak informasi transaksi keuangan.

CONTOH:
- "beli ayam 10ribu cash" → pengeluaran makanan 10000
- "gajian 5jt bca" → pemasukan gaji 5000000
- "makan siang 25rb" → pengeluaran makanan 25000
- "bayar listrik 500rb bca" → pengeluaran tagihan 500000
- "naik ojol 15rb gopay" → pengeluaran transportasi 15000

KONVERSI MATA UANG:
- ribu/rb/k = x1.000 (contoh: 10ribu = 10.000)
- juta/jt/m = x1.000.000 (contoh: 5jt = 5.000.000)

KATEGORI PENGELUARAN (WAJIB PILIH SALAH SATU):
{_category_lines(CategoryType.EXPENSE)}

KATEGORI PEMASUKAN:
{_category_lines(CategoryType.INCOME)}

CATATAN:
- Abaikan informasi akun/dompet/rekening, sistem memakai satu saldo gabungan.
- Transfer antar akun dianggap "expense" dengan kategori paling relevan.

OUTPUT FORMAT (JSON ONLY):
{{
  "type": "expense" | "income",
  "amount": number (rupiah penuh, bukan ribu/juta),
  "category": string (nama kategori persis dari daftar di atas),
  "description": string (deskripsi singkat dalam bahasa Indonesia),
  "confidence": number (0-1, tingkat keyakinan parsing)
}}

PENTING:
- Selalu output JSON valid saja, tanpa markdown atau penjelasan tambahan
- Amount harus angka penuh (10000 bukan "10ribu")
- Jika tidak yakin, set confidence rendah (< 0.7)"""

RECEIPT_PROMPT = SYSTEM_PROMPT + """

Tambahan aturan untuk gambar nota:
- Baca teks dari nota/foto struk
- Ambil total pembayaran sebagai amount
- Jika ada nama merchant, masukkan ke description
- Jika kategori tidak jelas, pilih "Shopping"
- Output JSON valid saja tanpa markdown"""

CORRECTION_PROMPT = SYSTEM_PROMPT + """

Perbaiki hasil parsing berdasarkan masukan pengguna.
- Gunakan JSON sebelumnya sebagai dasar
- Ikuti koreksi pengguna (jumlah, kategori, deskripsi)
- Output JSON valid saja tanpa markdown"""


def parse_candidate_json(response_text: str) -> Optional[ParsedCandidate]:
    """
    Extract and validate a candidate from a model reply.

    Tolerates ```json fences and prose around the object.
    Returns None if no valid candidate can be read.
    """
    text = (response_text or "").strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        return None

    try:
        data = json.loads(text[start:end])
        return ParsedCandidate.model_validate(data)
    except (ValueError, ValidationError) as e:
        logger.info("candidate_rejected", reason=str(e)[:200])
        return None


class GeminiTransactionParser(TransactionParser):
    """
    Transaction parser backed by Google Generative AI.

    Failures (network, quota, unparseable reply) are logged and
    reported as None.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        generation_config = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_tokens,
        }
        self._text_model = genai.GenerativeModel(
            model_name=self._settings.text_model_name,
            generation_config=generation_config,
        )
        self._vision_model = genai.GenerativeModel(
            model_name=self._settings.vision_model_name,
            generation_config=generation_config,
        )

    async def _generate(self, model, contents, operation: str) -> Optional[ParsedCandidate]:
        try:
            response = await model.generate_content_async(contents)
            text = response.text
        except Exception as e:
            # Any SDK or transport failure is a failed parse for the caller
            logger.warning("gemini_call_failed", operation=operation, error=str(e))
            return None

        candidate = parse_candidate_json(text)
        if candidate is None:
            logger.info("gemini_reply_unusable", operation=operation)
        return candidate

    async def parse_text(self, text: str) -> Optional[ParsedCandidate]:
        prompt = f'{SYSTEM_PROMPT}\n\nParse transaksi berikut: "{text}"'
        return await self._generate(self._text_model, prompt, "parse_text")

    async def parse_image(self, image_bytes: bytes, mime_type: str) -> Optional[ParsedCandidate]:
        contents = [
            RECEIPT_PROMPT,
            {"mime_type": mime_type, "data": image_bytes},
        ]
        return await self._generate(self._vision_model, contents, "parse_image")

    async def revise(self, previous: ParsedCandidate, feedback: str) -> Optional[ParsedCandidate]:
        previous_json = json.dumps(previous.model_dump(mode="json"), ensure_ascii=False)
        contents = [
            CORRECTION_PROMPT,
            f"JSON sebelumnya: {previous_json}",
            f'Koreksi pengguna: "{feedback}"',
        ]
        return await self._generate(self._vision_model, contents, "revise")
