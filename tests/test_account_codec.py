from __future__ import annotations

import struct
import unittest

import config
from tests.fakes import ConfigPatchMixin, TOKEN
from trading.account_codec import (
    DCA_MIN_SIZE,
    PRICE_TRADE_MIN_SIZE,
    PROTECTION_MIN_SIZE,
    U64_MAX,
    AccountKind,
    DCAState,
    InstructionKind,
    InstructionSpec,
    PriceTradeState,
    ProtectionState,
    decode_account,
    decode_dca,
    decode_price_trade,
    decode_protection,
    encode_dca,
    encode_instruction,
    encode_price_trade,
    encode_protection,
)
from trading.errors import DecodeError, InvalidParameters
from utils.addressing import pubkey_bytes, pubkey_from_bytes


class ProtectionLayoutTests(unittest.TestCase):
    def test_decode_reads_fixed_offsets(self) -> None:
        raw = b"\xaa" * 8 + struct.pack("<QQQ", 60, 70, 90) + b"\x01"
        state = decode_protection(raw)
        self.assertEqual(state, ProtectionState(60, 70, 90, True))

    def test_any_nonzero_flag_is_enabled(self) -> None:
        raw = b"\x00" * 8 + struct.pack("<QQQ", 1, 2, 3) + b"\x07"
        self.assertTrue(decode_protection(raw).automation_enabled)
        raw = raw[:32] + b"\x00"
        self.assertFalse(decode_protection(raw).automation_enabled)

    def test_roundtrip_ignores_header(self) -> None:
        for state in (
            ProtectionState(0, 0, 0, False),
            ProtectionState(60, 70, 90, True),
            ProtectionState(U64_MAX, U64_MAX - 1, 1, True),
        ):
            encoded = encode_protection(state, header=b"\x11\x22\x33\x44\x55\x66\x77\x88")
            self.assertEqual(len(encoded), PROTECTION_MIN_SIZE)
            self.assertEqual(decode_protection(encoded), state)

    def test_trailing_bytes_are_ignored(self) -> None:
        encoded = encode_protection(ProtectionState(5, 6, 7, True)) + b"\xff" * 100
        self.assertEqual(decode_protection(encoded), ProtectionState(5, 6, 7, True))

    def test_short_buffer_fails(self) -> None:
        with self.assertRaises(DecodeError):
            decode_protection(b"\x00" * (PROTECTION_MIN_SIZE - 1))

    def test_encode_rejects_out_of_range(self) -> None:
        with self.assertRaises(InvalidParameters):
            encode_protection(ProtectionState(U64_MAX + 1, 0, 0, True))
        with self.assertRaises(InvalidParameters):
            encode_protection(ProtectionState(-1, 0, 0, True))


class DCAAndPriceTradeLayoutTests(unittest.TestCase):
    def test_dca_offsets(self) -> None:
        token_raw = bytes(range(32))
        raw = bytearray(DCA_MIN_SIZE)
        raw[40:48] = struct.pack("<Q", 86400)
        raw[48:80] = token_raw
        raw[80:88] = struct.pack("<Q", 1_000_000)
        raw[88] = 1
        state = decode_dca(bytes(raw))
        self.assertEqual(state.interval_seconds, 86400)
        self.assertEqual(state.token_address, pubkey_from_bytes(token_raw))
        self.assertEqual(state.token_amount, 1_000_000)
        self.assertTrue(state.enabled)

    def test_price_trade_offsets(self) -> None:
        raw = bytearray(PRICE_TRADE_MIN_SIZE)
        raw[89:97] = struct.pack("<Q", 150)
        raw[97:129] = pubkey_bytes(TOKEN)
        raw[129:137] = struct.pack("<Q", 42)
        raw[137] = 0
        state = decode_price_trade(bytes(raw))
        self.assertEqual(state, PriceTradeState(150, TOKEN, 42, False))

    def test_kinds_share_one_record(self) -> None:
        record = encode_protection(ProtectionState(60, 70, 90, True))
        record = encode_dca(DCAState(3600, TOKEN, 5, True), base=record)
        record = encode_price_trade(PriceTradeState(150, TOKEN, 7, True), base=record)
        self.assertEqual(len(record), PRICE_TRADE_MIN_SIZE)
        self.assertEqual(decode_account(AccountKind.PROTECTION, record), ProtectionState(60, 70, 90, True))
        self.assertEqual(decode_account(AccountKind.DCA, record), DCAState(3600, TOKEN, 5, True))
        self.assertEqual(decode_account(AccountKind.PRICE_TRADE, record), PriceTradeState(150, TOKEN, 7, True))

    def test_short_buffers_fail_per_kind(self) -> None:
        with self.assertRaises(DecodeError):
            decode_dca(b"\x00" * (DCA_MIN_SIZE - 1))
        with self.assertRaises(DecodeError):
            decode_price_trade(b"\x00" * (PRICE_TRADE_MIN_SIZE - 1))
        # Long enough for protection, too short for DCA.
        with self.assertRaises(DecodeError):
            decode_account("dca", b"\x00" * PROTECTION_MIN_SIZE)


class InstructionEncodingTests(ConfigPatchMixin, unittest.TestCase):
    def test_fieldless_instructions_are_discriminator_only(self) -> None:
        self.assertEqual(encode_instruction(InstructionKind.AUTO_REPAY), config.DISCRIMINATOR_AUTO_REPAY)
        self.assertEqual(encode_instruction(InstructionKind.BORROW), config.DISCRIMINATOR_BORROW)
        self.assertEqual(len(encode_instruction(InstructionKind.REPAY)), 8)

    def test_protection_discriminators_are_anchor_tags(self) -> None:
        self.assertEqual(list(config.DISCRIMINATOR_INITIALIZE), [175, 175, 109, 31, 13, 152, 155, 237])
        self.assertEqual(list(config.DISCRIMINATOR_AUTO_REPAY), [112, 104, 176, 118, 250, 61, 48, 164])

    def test_set_automation_layout(self) -> None:
        data = encode_instruction(InstructionKind.SET_AUTOMATION, 70, 90)
        self.assertEqual(data, config.DISCRIMINATOR_SET_AUTOMATION + struct.pack("<QQ", 70, 90))

    def test_set_dca_layout(self) -> None:
        data = encode_instruction(InstructionKind.SET_DCA, 86400, TOKEN, 500)
        self.assertEqual(data[:8], bytes([102] * 8))
        self.assertEqual(data[8:16], struct.pack("<Q", 86400))
        self.assertEqual(data[16:48], pubkey_bytes(TOKEN))
        self.assertEqual(data[48:], struct.pack("<Q", 500))

    def test_mock_buy_and_price_trade_layouts(self) -> None:
        mock_buy = encode_instruction(InstructionKind.MOCK_BUY, TOKEN, 9)
        self.assertEqual(mock_buy, bytes([103] * 8) + pubkey_bytes(TOKEN) + struct.pack("<Q", 9))
        set_price = encode_instruction(InstructionKind.SET_PRICE_TRADING, 150, TOKEN, 3)
        self.assertEqual(len(set_price), 8 + 8 + 32 + 8)
        self.assertEqual(set_price[:8], bytes([104] * 8))
        execute = InstructionSpec(InstructionKind.EXECUTE_PRICE_TRADE, (140,)).encode()
        self.assertEqual(execute, bytes([105] * 8) + struct.pack("<Q", 140))

    def test_field_count_and_types_are_checked(self) -> None:
        with self.assertRaises(InvalidParameters):
            encode_instruction(InstructionKind.SET_AUTOMATION, 70)
        with self.assertRaises(InvalidParameters):
            encode_instruction(InstructionKind.MOCK_BUY, "not-a-key", 1)
        with self.assertRaises(InvalidParameters):
            encode_instruction(InstructionKind.EXECUTE_PRICE_TRADE, 1.5)

    def test_discriminator_is_read_from_config(self) -> None:
        self.patch_cfg(DISCRIMINATOR_MOCK_BUY=b"\x01\x02\x03\x04\x05\x06\x07\x08")
        data = encode_instruction(InstructionKind.MOCK_BUY, TOKEN, 1)
        self.assertEqual(data[:8], b"\x01\x02\x03\x04\x05\x06\x07\x08")


if __name__ == "__main__":
    unittest.main()
