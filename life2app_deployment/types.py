import click
from eth_utils import is_hex, to_bytes, to_checksum_address


class ChecksumAddress(click.ParamType):
    name = "checksum_address"

    def convert(self, value, param, ctx):
        try:
            value = to_checksum_address(value=value)
        except ValueError:
            self.fail(f"{value} is not a valid address", param, ctx)
        else:
            return value


class HexData(click.ParamType):
    name = "hex_data"

    def convert(self, value, param, ctx):
        if isinstance(value, bytes):
            return value
        if not is_hex(value):
            self.fail(f"{value} is not valid hex data", param, ctx)
        return to_bytes(hexstr=value)
