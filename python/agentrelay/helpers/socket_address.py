import re


def parse_socket_address(address: str | int, default_host: str = "127.0.0.1") -> tuple[str, int]:
  """
  Parse a listen address into host and port.

  Args:
    address: A port number, or a "host:port", ":port", "port" or "[IPv6]:port" string
    default_host: Host used when the address only carries a port

  Raises:
    ValueError: If the address format is invalid or the port is out of range
  """
  if address is None:
    raise ValueError("Address cannot be None")

  host = default_host

  if isinstance(address, int):
    port = address
  elif isinstance(address, str):
    address = address.strip()
    if not address:
      raise ValueError("Address string cannot be empty")

    ipv6_match = re.match(r"^\[([^\]]+)\]:(.+)$", address)
    if ipv6_match:
      host, port_str = ipv6_match.group(1), ipv6_match.group(2)
    elif ":" in address:
      if address.count(":") > 1:
        raise ValueError(f"Ambiguous address format. For IPv6 addresses with port, use [host]:port format: {address}")
      _host, port_str = address.split(":", 1)
      if _host.strip():
        host = _host.strip()
    else:
      port_str = address

    try:
      port = int(port_str.strip())
    except ValueError:
      raise ValueError(f"Invalid port number '{port_str}' in address: {address}")
  else:
    raise ValueError(f"Address must be int or str, got {type(address).__name__}: {address}")

  if port < 0 or port > 65535:
    raise ValueError(f"Port {port} is out of range (0-65535)")

  return host, port
