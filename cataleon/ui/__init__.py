from . import (
	add_product,
	catalog,
	dashboard,
	import_products,
	inquiries,
	invoices,
	settings,
	share_links,
	shared_catalog,
	vendor_profile,
)

__all__ = [
	"dashboard",
	"catalog",
	"add_product",
	"import_products",
	"share_links",
	"shared_catalog",
	"inquiries",
	"invoices",
	"vendor_profile",
	"settings",
]
