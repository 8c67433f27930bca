"""Steam Icon Restorer - restores missing game icons from Steam's CDN."""
