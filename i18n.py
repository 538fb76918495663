from typing import Literal

Language = Literal["id", "en"]

MESSAGES: dict[str, dict[str, str]] = {
    "id": {
        "setup": (
            "Halo! {identity} kamu belum terdaftar di Celengan.\n\n"
            "Buka aplikasi Celengan → Settings, lalu masukkan {identity} kamu "
            "untuk mulai."
        ),
        "identity_telegram": "Username Telegram",
        "identity_whatsapp": "Nomor WhatsApp",
        "clarify": (
            "Maaf, saya tidak mengerti pesanmu. Coba kirim seperti:\n"
            '• "Beli kopi 25rb"\n• "Gajian 5jt"\n• "Bayar listrik 150rb"\n'
            "• Ketik {help_command} untuk info lebih lanjut"
        ),
        "help": (
            "*Celengan Bot* - Catat transaksi via {channel}\n\n"
            "*Contoh pesan:*\n"
            '• "Beli makan siang 35rb"\n• "Gajian 6jt"\n'
            '• "Bayar listrik 150rb dari BRI"\n\n'
            "*Akunmu:*\n{accounts}\n\n"
            "*Perintah:*\n"
            "• /saldo - lihat saldo\n"
            "• /atur <akun> <jumlah> - ubah saldo akun\n"
            "• /transaksi - transaksi bulan ini\n"
            "• /akun [nomor] - lihat atau pilih akun utama"
        ),
        "no_accounts": "(Belum ada akun)",
        "balances": "*Saldo Akunmu:*\n{lines}\n*Total: {total}*",
        "transactions": "*Transaksi Bulan Ini:*\n{lines}",
        "no_transactions": "Belum ada transaksi.",
        "recorded": "{emoji} {kind} dicatat!\n{description}\n{amount}{details}",
        "recorded_footer": "Lihat detail di app Celengan",
        "kind_spending": "Pengeluaran",
        "kind_income": "Pemasukan",
        "account_label": "Akun",
        "category_label": "Kategori",
        "save_failed": "Maaf, terjadi kesalahan saat menyimpan. Coba lagi.",
        "accounts": "*Akunmu:*\n{lines}\n\nKetik /akun <nomor> untuk memilih akun utama.",
        "default_marker": "(utama)",
        "default_set": "Akun utama sekarang: {name}",
        "invalid_index": "Nomor akun tidak valid. Pilih salah satu:\n{lines}",
        "set_usage": "Format: /atur <akun> <jumlah>, contoh: /atur BCA 1.5jt",
        "invalid_amount": (
            'Jumlah "{text}" tidak valid. Contoh yang benar: 500000, 500.000, '
            "500rb, 1.5jt"
        ),
        "unknown_account": 'Akun "{name}" tidak ditemukan. Akunmu:\n{lines}',
        "balance_set": "Saldo {name} diperbarui: {previous} → {new}",
    },
    "en": {
        "setup": (
            "Hi! Your {identity} isn't registered in Celengan yet.\n\n"
            "Open the Celengan app → Settings, and enter your {identity} to get "
            "started."
        ),
        "identity_telegram": "Telegram username",
        "identity_whatsapp": "WhatsApp number",
        "clarify": (
            "Sorry, I didn't understand that. Try sending:\n"
            '• "Coffee 25000"\n• "Salary 5000000"\n• "Electric bill 150000"\n'
            "• Type {help_command} for more info"
        ),
        "help": (
            "*Celengan Bot* - Log transactions via {channel}\n\n"
            "*Example messages:*\n"
            '• "Lunch 35000"\n• "Salary 6000000"\n'
            '• "Electric bill 150000 from BRI"\n\n'
            "*Your accounts:*\n{accounts}\n\n"
            "*Commands:*\n"
            "• /balance - view balances\n"
            "• /set <account> <amount> - set an account balance\n"
            "• /transactions - this month's transactions\n"
            "• /accounts [number] - list or pick the default account"
        ),
        "no_accounts": "(No accounts yet)",
        "balances": "*Your Account Balances:*\n{lines}\n*Total: {total}*",
        "transactions": "*This Month's Transactions:*\n{lines}",
        "no_transactions": "No transactions yet.",
        "recorded": "{emoji} {kind} recorded!\n{description}\n{amount}{details}",
        "recorded_footer": "View details in the Celengan app",
        "kind_spending": "Spending",
        "kind_income": "Income",
        "account_label": "Account",
        "category_label": "Category",
        "save_failed": "Sorry, there was an error saving that. Please try again.",
        "accounts": (
            "*Your accounts:*\n{lines}\n\n"
            "Send /accounts <number> to pick the default account."
        ),
        "default_marker": "(default)",
        "default_set": "Default account is now: {name}",
        "invalid_index": "That account number is not valid. Pick one of:\n{lines}",
        "set_usage": "Usage: /set <account> <amount>, e.g. /set BCA 1.5jt",
        "invalid_amount": (
            '"{text}" is not a valid amount. Try 500000, 500.000, 500rb or 1.5jt'
        ),
        "unknown_account": 'No account named "{name}". Your accounts:\n{lines}',
        "balance_set": "{name} balance updated: {previous} → {new}",
    },
}


def translate(lang: str, key: str, **values: object) -> str:
    catalogue = MESSAGES.get(lang) or MESSAGES["en"]
    template = catalogue.get(key) or MESSAGES["en"].get(key)
    if template is None:
        return key
    return template.format(**values) if values else template
