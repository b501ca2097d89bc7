"""
Chat reply texts (Indonesian).

Pure functions from results to message text. The chat flow decides
which one to send; nothing here touches storage.
"""

from datetime import date
from decimal import Decimal

from catatuang.models.ledger import (
    CandidateType,
    ParsedCandidate,
    PeriodSummary,
    Transaction,
    TransactionType,
)
from catatuang.utils.currency import format_rupiah, format_signed_rupiah


MONTH_NAMES = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]

RULE = "━━━━━━━━━━━━━━━━━━"

NOT_LINKED = (
    "🔒 Akun Telegram belum terhubung.\n\n"
    "Login di dashboard web lalu klik *Connect Telegram*."
)
GENERIC_ERROR = "❌ Terjadi kesalahan. Silakan coba lagi."
TEXT_NOT_UNDERSTOOD = (
    "🤔 Maaf, saya tidak dapat memahami pesan Anda.\n\n"
    "Coba format seperti:\n"
    "• \"beli makan 20ribu cash\"\n"
    "• \"gajian 5jt bca\""
)
RECEIPT_UNREADABLE = (
    "🤔 Maaf, nota tidak terbaca dengan jelas.\n\n"
    "Coba kirim foto yang lebih terang dan fokus."
)
RECEIPT_CORRECTION_PROMPT = (
    "Boleh jelaskan bagian mana yang salah? Contoh:\n"
    "- jumlahnya 25rb\n"
    "- kategorinya transportasi\n"
    "- catatan belanja bulanan"
)
RECEIPT_REPROMPT = "Balas dengan *benar* atau *salah* ya."
REVISION_FAILED = "Maaf, aku belum paham koreksinya. Bisa jelasin lagi dengan kalimat sederhana?"
RECEIPT_CANCELLED = "✅ Oke, proses nota dibatalkan."
NO_RECEIPT_PENDING = "Tidak ada nota yang perlu dikonfirmasi."
NOTHING_TO_DELETE = "📭 Tidak ada transaksi untuk dihapus."
REPLY_DELETE_NOT_FOUND = (
    "⚠️ Tidak menemukan transaksi pada pesan yang kamu reply.\n"
    "Reply ke pesan transaksi kamu atau pesan konfirmasi bot terbaru."
)
REPLY_DELETE_ALREADY_DELETED = "⚠️ Transaksi tidak ditemukan atau sudah dihapus."
UNKNOWN_COMMAND = "Perintah tidak dikenal. Ketik /bantuan untuk melihat panduan."

RECEIPT_BUTTONS = [
    ("✅ Benar", "receipt_confirm"),
    ("❌ Salah", "receipt_reject"),
]

TYPE_LABELS = {
    TransactionType.EXPENSE: "Pengeluaran",
    TransactionType.INCOME: "Pemasukan",
    TransactionType.TRANSFER: "Transfer",
}


def welcome_message() -> str:
    return (
        "👋 Halo! Selamat datang di Catatuang 💸\n\n"
        "Cukup kirim chat, dan aku yang urus pencatatan keuanganmu.\n\n"
        f"{RULE}\n"
        "📝 Cara cepat mencatat:\n"
        "• beli kopi 15 ribu\n"
        "• makan 10k\n"
        "• gaji 2 juta\n"
        f"{RULE}\n\n"
        "📊 Mau lihat ringkasan? Ketik /ringkasan\n"
        "📖 Perlu panduan lengkap? Ketik /bantuan"
    )


def help_message(receipt_limit: int) -> str:
    return (
        "📖 *Panduan Penggunaan Bot*\n\n"
        "🔒 *Sebelum mulai:*\n"
        "Login di dashboard web dan klik *Connect Telegram* untuk menghubungkan akun.\n\n"
        "*Mencatat Transaksi:*\n"
        "Cukup kirim pesan biasa, misalnya \"makan siang 25rb\" atau \"gajian 5jt\".\n\n"
        "*Nota/Struk:*\n"
        "Kirim foto nota, lalu balas *benar* atau *salah*.\n"
        f"Batas harian: {receipt_limit}x per hari.\n\n"
        "*Format Angka:*\n"
        "• ribu/rb/k = x1.000 (10rb = 10.000)\n"
        "• juta/jt = x1.000.000 (5jt = 5.000.000)\n\n"
        "*Perintah:*\n"
        "/saldo - Lihat saldo gabungan\n"
        "/riwayat - Transaksi hari ini\n"
        "/ringkasan - Ringkasan bulan ini\n"
        "/hapus - Hapus transaksi terakhir\n"
        "/bantuan - Tampilkan panduan ini\n\n"
        "💡 Reply ke pesan transaksi dengan `hapus` / `del` / `delete` untuk menghapusnya."
    )


def chat_quota_exceeded(limit: int) -> str:
    return (
        f"⚠️ Kuota chat hari ini sudah habis ({limit}x).\n"
        "Coba lagi besok atau upgrade akun."
    )


def receipt_quota_exceeded(limit: int) -> str:
    return (
        f"⚠️ Kuota scan nota hari ini sudah habis ({limit}x).\n"
        "Coba lagi besok atau upgrade akun."
    )


def invalid_image(reason: str) -> str:
    return f"⚠️ Foto tidak bisa dipakai: {reason}\nCoba kirim ulang."


def receipt_preview(candidate: ParsedCandidate) -> str:
    return (
        "🧾 *Hasil baca nota:*\n\n"
        f"• Jenis: {TYPE_LABELS[candidate.type.transaction_type]}\n"
        f"• Jumlah: {format_rupiah(candidate.amount)}\n"
        f"• Kategori: {candidate.category}\n"
        f"• Catatan: {candidate.description}\n\n"
        "Tekan tombol *Benar* atau *Salah*.\n"
        "Kalau salah, jelaskan bagian yang salah. Aku akan benerin lagi."
    )


def receipt_saved(transaction: Transaction, balance: Decimal) -> str:
    return (
        "✅ Nota tersimpan!\n"
        f"Saldo saat ini: {format_rupiah(balance)}\n"
        f"🔖 {transaction.reference_token}"
    )


def transaction_recorded(transaction: Transaction, candidate: ParsedCandidate, balance: Decimal) -> str:
    is_income = candidate.type == CandidateType.INCOME
    header = "🟢 PEMASUKAN TERCATAT" if is_income else "🔴 PENGELUARAN TERCATAT"
    amount = format_signed_rupiah(candidate.amount if is_income else -candidate.amount)
    category = transaction.category.display_label if transaction.category else candidate.category
    return (
        f"{header}\n\n"
        f"📂 Kategori     : {category}\n"
        f"📝 Catatan      : {candidate.description}\n"
        f"{'💰' if is_income else '💸'} Nominal     : {amount}\n"
        f"{RULE}\n"
        f"💰 Saldo sekarang    : {format_rupiah(balance)}\n"
        f"🔖 {transaction.reference_token}"
    )


def transaction_deleted(transaction: Transaction) -> str:
    return (
        "🗑️ *Transaksi Dihapus*\n\n"
        f"{TYPE_LABELS[transaction.type]}: {format_rupiah(transaction.amount)}\n"
        f"{transaction.description or 'Tanpa keterangan'}\n\n"
        "_Saldo telah dikembalikan._"
    )


def balance_message(total: Decimal) -> str:
    return (
        "💰 *Saldo Gabungan*\n\n"
        f"{format_rupiah(total)}\n\n"
        "_Semua transaksi digabung ke satu saldo._"
    )


def long_date(day: date) -> str:
    """`19 Oktober 2026`"""
    return f"{day.day} {MONTH_NAMES[day.month - 1]} {day.year}"


def history_message(
    today: date,
    summary: PeriodSummary,
    transactions: list[Transaction],
    balance: Decimal,
) -> str:
    lines = [
        f"📅 {long_date(today)}",
        RULE,
        "",
        "📊 Ringkasan Hari Ini",
        f"🔴 Pengeluaran : {format_rupiah(summary.total_expense)}",
        f"🟢 Pemasukan   : {format_rupiah(summary.total_income)}",
        RULE,
        f"📉 Selisih     : {format_signed_rupiah(summary.net)}",
        "",
        "🧾 Detail Transaksi",
        "",
    ]

    if not transactions:
        lines.append("Belum ada transaksi hari ini.")
    for tx in transactions:
        description = tx.description or (tx.category.display_label if tx.category else "Transaksi")
        icon = {"EXPENSE": "🔴", "INCOME": "🟢"}.get(tx.type.value, "🔵")
        signed = tx.amount if tx.type == TransactionType.INCOME else -tx.amount
        lines.append(f"{icon} {format_signed_rupiah(signed)}   {description}")

    lines.extend(["", RULE, f"💰 Saldo Saat Ini : {format_rupiah(balance)}"])
    return "\n".join(lines)


def month_summary_message(year: int, month: int, summary: PeriodSummary, balance: Decimal) -> str:
    net = summary.net
    return (
        f"📊 *Ringkasan {MONTH_NAMES[month - 1]} {year}*\n\n"
        f"🟢 Pemasukan: {format_rupiah(summary.total_income)}\n"
        f"🔴 Pengeluaran: {format_rupiah(summary.total_expense)}\n"
        f"{RULE}\n"
        f"{'📈' if net >= 0 else '📉'} Selisih: {format_signed_rupiah(net)}\n\n"
        f"📝 Total transaksi: {summary.transaction_count}\n"
        f"💰 Saldo saat ini: {format_rupiah(balance)}"
    )
