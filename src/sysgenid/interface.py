"""The com.RFC.sysgenid D-Bus interface: names, signatures and introspection data."""

from __future__ import annotations

INTERFACE = "com.RFC.sysgenid"
OBJECT_PATH = "/com/RFC/sysgenid"
DEFAULT_BUS_NAME = "com.RFC.sysgenid"

# member -> (input signature, output signature)
METHODS = {
    "GetSysGenCounter": ("", "u"),
    "CountOutdatedWatchers": ("", "u"),
    "UpdateWatcher": ("bu", "u"),
    "TriggerSysGenUpdate": ("u", ""),
}

SIGNALS = {
    "NewGeneration": "u",
    "SystemReady": "",
}

INTROSPECTABLE = "org.freedesktop.DBus.Introspectable"
PEER = "org.freedesktop.DBus.Peer"

_DOCTYPE = (
    '<!DOCTYPE node PUBLIC "-//freedesktop//DTD D-BUS Object Introspection 1.0//EN"\n'
    ' "http://www.freedesktop.org/standards/dbus/1.0/introspect.dtd">\n'
)

INTROSPECTION_XML = _DOCTYPE + f"""<node name="{OBJECT_PATH}">
  <interface name="{INTERFACE}">
    <method name="GetSysGenCounter">
      <arg name="sysgen_counter" type="u" direction="out"/>
    </method>
    <method name="CountOutdatedWatchers">
      <arg name="outdated_watchers" type="u" direction="out"/>
    </method>
    <method name="UpdateWatcher">
      <arg name="tracking" type="b" direction="in"/>
      <arg name="watcher_counter" type="u" direction="in"/>
      <arg name="sysgen_counter" type="u" direction="out"/>
    </method>
    <method name="TriggerSysGenUpdate">
      <arg name="min_gen" type="u" direction="in"/>
    </method>
    <signal name="NewGeneration">
      <arg name="sysgen_counter" type="u"/>
    </signal>
    <signal name="SystemReady"/>
  </interface>
  <interface name="{INTROSPECTABLE}">
    <method name="Introspect">
      <arg name="xml_data" type="s" direction="out"/>
    </method>
  </interface>
  <interface name="{PEER}">
    <method name="Ping"/>
  </interface>
</node>
"""


def introspect_path(path: str) -> str | None:
    """Introspection XML for path, or None if nothing lives there.

    Ancestors of OBJECT_PATH list the next path segment as a child node.
    """
    if path == OBJECT_PATH:
        return INTROSPECTION_XML
    prefix = path.rstrip("/") + "/"
    if not OBJECT_PATH.startswith(prefix):
        return None
    child = OBJECT_PATH[len(prefix):].split("/", 1)[0]
    return _DOCTYPE + f'<node>\n  <node name="{child}"/>\n</node>\n'
