"""
Product reviews: rating labels and stars, offer strings, and a global
register of every product and review on the site.
"""

import logging
import math

from ..events import Event

DEFAULT_REVIEW_SPEC = {
    'best_rating': 5,
    'worst_rating': 0,
    'ratings': {
        'want_stars': True,
        'stars': {
            'full': '/assets/images/stars/starfull.png',
            'half': '/assets/images/stars/starhalf.png',
            'none': '/assets/images/stars/starnone.png',
        },
        'alts': {
            0: 'Dreadful',
            0.5: 'Dismal',
            1: 'Bad',
            1.5: 'Poor',
            2: 'Below Average',
            2.5: 'Average',
            3: 'Above Average',
            3.5: 'Decent',
            4: 'Good',
            4.5: 'Great',
            5: 'Excellent',
        },
    },
    'currencies': {
        'GBP': {'symbol': '£', 'name': 'GBP'},
        'USD': {'symbol': '$', 'name': 'USD'},
        'EUR': {'symbol': '€', 'name': 'EUR'},
    },
    'default_currency': 'GBP',
}

UNIT_CODES = {'ANN': 'year', 'MON': 'month'}

logger = logging.getLogger('Folio.ProductReviews')


def rating_label(rating, alts):
    """The descriptive label for a rating, rounded down to the nearest half."""
    key = math.floor(float(rating) * 2) / 2
    for candidate in (key, str(key), f"{key:g}"):
        if candidate in alts:
            return alts[candidate]
    return None


def rating_stars(rating, best=5):
    """A list of 'full', 'half' and 'none' entries, ``best`` long."""
    rating = float(rating)
    full = int(math.floor(rating))
    half = rating - full > 0
    blanks = int(best) - full - (1 if half else 0)
    return ['full'] * full + (['half'] if half else []) + ['none'] * max(blanks, 0)


class ProductReviewProcessor:

    def __init__(self, ctx, article):
        self.ctx = ctx
        self.article = article
        self.spec = ctx.settings.section('review_spec')

    def currency(self, code, key):
        currencies = self.spec.get('currencies', {})
        if code not in currencies:
            logger.error(f"No currency defined for '{code}', processing key '{key}' ({self.article.rel_path})")
            return None
        return currencies[code]

    def price_str(self, price, currency):
        if price is None:
            return ''
        if float(price) == 0:
            return 'Free'
        return (currency or {}).get('symbol', '') + str(price)

    def process_offer(self, offer, product, key):
        offer = dict(offer)
        offer.setdefault('price_currency', self.spec.get('default_currency'))
        currency = self.currency(offer['price_currency'], key)

        seller = offer.get('offered_by')
        if seller is not None and not isinstance(seller, dict):
            seller = {'name': seller}
        for field in ('mpn', 'sku'):
            if product.get(field) and not offer.get(field):
                offer[field] = product[field]

        parts = []
        if seller:
            seller.setdefault('url', offer.get('url'))
            offer['offered_by'] = seller
            if seller.get('url') and not offer.get('price_specification'):
                parts.append(self.ctx.link(seller['name'], seller['url']))
            else:
                parts.append(str(seller.get('name', '')))
        if offer.get('name'):
            name = self.ctx.link(offer['name'], offer['url']) if offer.get('url') else offer['name']
            parts.append(': ' + name)

        specs = offer.get('price_specification')
        if specs:
            items = []
            for ps in specs:
                ps = dict(ps)
                ps.setdefault('url', offer.get('url'))
                ps.setdefault('price_currency', offer['price_currency'])
                label = ps.get('name') or ''
                if ps.get('url'):
                    label = self.ctx.link(ps.get('name') or 'Offer', ps['url'])
                item = label + ' ' + self.price_str(ps.get('price'), self.currency(ps['price_currency'], key))
                unit = (ps.get('reference_quantity') or {}).get('unit_code')
                if unit:
                    if unit in UNIT_CODES:
                        item += '/' + UNIT_CODES[unit]
                    else:
                        logger.warning(f"Cannot deal with unit code {unit} in offer ({self.article.rel_path})")
                items.append(f"<li>{item.strip()}</li>")
            parts.append('<ul class="ops">' + ''.join(items) + '</ul>')
        elif offer.get('price') is not None:
            parts.append(' ' + self.price_str(offer['price'], currency))

        offer['offer_str'] = ''.join(parts)
        return offer

    def process_product(self, key, product):
        if not product.get('name'):
            logger.warning(f"Products should have a name ({key}) ({self.article.rel_path})")
        if not product.get('description'):
            logger.info(f"Products are better with a description ({key}) ({self.article.rel_path})")
        offers = product.get('offers')
        if offers:
            if isinstance(offers, dict):
                offers = [offers]
            product['offers'] = [self.process_offer(offer, product, key) for offer in offers]
        product.setdefault('review_url', self.article.url if key in self.article.reviews else None)
        return product

    def process_review(self, key, review):
        ratings = self.spec.get('ratings', {})
        review.setdefault('best_rating', self.spec.get('best_rating', 5))
        review.setdefault('worst_rating', self.spec.get('worst_rating', 0))
        review.setdefault('review_count', 1)
        review.setdefault('rating_count', 1)

        if review.get('rating') is None:
            logger.warning(f"Reviews should have a rating ({key}) ({self.article.rel_path})")
            return review
        if not review.get('description'):
            logger.info(f"Reviews are better with a description ({key}) ({self.article.rel_path})")

        review['rating_str'] = f"{review['rating']} out of {review['best_rating']}"
        review['rating_label'] = rating_label(review['rating'], ratings.get('alts', {}))
        if ratings.get('want_stars'):
            stars = ratings.get('stars', {})
            review['rating_stars'] = [
                {'kind': kind, 'url': stars.get(kind)}
                for kind in rating_stars(review['rating'], review['best_rating'])
            ]
        return review

    def process(self):
        products = self.ctx.ext('products', {})
        reviews = self.ctx.ext('reviews', {})
        for key, product in self.article.products.items():
            self.article.products[key] = self.process_product(key, dict(product))
            products[f"{self.article.url}#{key}"] = self.article.products[key]
        for key, review in self.article.reviews.items():
            self.article.reviews[key] = self.process_review(key, dict(review))
            reviews[f"{self.article.url}#{key}"] = self.article.reviews[key]


def after_article_parser_run(ctx, article):
    if not article.products and not article.reviews:
        return
    ProductReviewProcessor(ctx, article).process()


def init(ctx):
    ctx.settings.merge_section('review_spec', DEFAULT_REVIEW_SPEC, preserve=True)
    ctx.ext('products', {})
    ctx.ext('reviews', {})
    ctx.on(Event.AFTER_ARTICLE_PARSER_RUN, lambda article: after_article_parser_run(ctx, article))
